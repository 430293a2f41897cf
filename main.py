import os
import hashlib
import logging
from typing import Callable, Optional
from urllib.parse import quote

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from notion_client import Client
from notion_client.errors import APIResponseError, HTTPResponseError, RequestTimeoutError

# ----------------------
# Configuration
# ----------------------
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "*")
RATE_LIMIT = os.getenv("RATE_LIMIT", "60 per minute")
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

BEARER_PREFIX = "Bearer "

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("notion-proxy")

# ----------------------
# App Setup
# ----------------------
app = Flask(__name__)
CORS(app, origins=[FRONTEND_ORIGIN])

# ----------------------
# Helpers
# ----------------------
def extract_bearer_token(headers) -> Optional[str]:
    """Return the token after a case-sensitive ``Bearer `` prefix, else None.

    The remainder is returned as-is, so ``"Bearer "`` yields an empty token.
    """
    auth_header = headers.get("authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        return None
    return auth_header[len(BEARER_PREFIX):]

def error_details(error: Exception):
    """Return the (message, code) pair an upstream failure exposes."""
    if isinstance(error, (APIResponseError, HTTPResponseError, RequestTimeoutError)):
        return str(error) or None, error.code
    return str(error) or None, None

def path_id(value: str) -> str:
    """Escape a path parameter so it stays one upstream path segment."""
    return quote(value, safe="")

def notion_proxy(call: Callable[[Client], object], failure_message: str,
                 expose_details: bool = False):
    """Authorize the request, make one upstream call and map the outcome."""
    token = extract_bearer_token(request.headers)
    if token is None:
        return jsonify({"error": "Missing authorization token"}), 401

    notion = Client(auth=token)

    try:
        return jsonify(call(notion)), 200
    except Exception as e:
        logger.exception("Notion API error on %s: %s", request.path, e)
        body = {"error": failure_message}
        if expose_details:
            message, code = error_details(e)
            body["details"] = message or "Unknown error"
            if code is not None:
                body["code"] = code
        return jsonify(body), 500

# ----------------------
# Rate Limiter
# ----------------------
def client_key_func():
    """Rate limit by a digest of the bearer token if present, otherwise by IP."""
    token = extract_bearer_token(request.headers)
    if token:
        return hashlib.sha256(token.encode()).hexdigest()
    return get_remote_address()

limiter = Limiter(
    key_func=client_key_func,
    app=app,
    default_limits=[RATE_LIMIT],
    storage_uri=RATE_LIMIT_STORAGE_URI
)

@app.errorhandler(429)
def rate_limit_exceeded(e):
    return jsonify({"error": f"Rate limit exceeded: {e.description}"}), 429

# ----------------------
# Endpoints
# ----------------------
@app.route("/", methods=["GET"])
def health_check():
    return jsonify({"status": "proxy-running"}), 200

@app.route("/notion/databases", methods=["GET"])
def list_databases():
    return notion_proxy(
        lambda notion: notion.search(
            filter={"value": "database", "property": "object"},
            sort={"direction": "descending", "timestamp": "last_edited_time"}
        )["results"],
        "Failed to fetch databases",
        expose_details=True
    )

@app.route("/notion/databases/<database_id>", methods=["GET"])
def retrieve_database(database_id):
    return notion_proxy(
        lambda notion: notion.databases.retrieve(database_id=path_id(database_id)),
        "Failed to fetch database"
    )

@app.route("/notion/databases/<database_id>/query", methods=["GET"])
def query_database(database_id):
    # First page only; next_cursor is not followed.
    return notion_proxy(
        lambda notion: notion.databases.query(database_id=path_id(database_id))["results"],
        "Failed to query database"
    )

@app.route("/notion/pages/<page_id>", methods=["GET"])
def retrieve_page(page_id):
    return notion_proxy(
        lambda notion: notion.pages.retrieve(page_id=path_id(page_id)),
        "Failed to fetch page"
    )

@app.route("/notion/blocks/<block_id>", methods=["GET"])
def list_block_children(block_id):
    return notion_proxy(
        lambda notion: notion.blocks.children.list(block_id=path_id(block_id))["results"],
        "Failed to fetch blocks"
    )

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
