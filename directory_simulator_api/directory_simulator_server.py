import hashlib
import logging
import os
import random

from flask import Flask, Response, jsonify, request

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

FAILURE_RATE = float(os.getenv("MOCK_FAILURE_RATE", "0.20"))

INDUSTRIES = [
    "Software",
    "Analytics",
    "Financial Services",
    "Healthcare",
    "Retail",
    "Logistics",
    "Media",
    "Telecommunications",
]

# Domains the directory has never heard of (answered with 404)
UNKNOWN_DOMAINS = {"example.com", "example.org", "localhost"}


def _profile(domain: str) -> dict:
    """Build a stable fake profile: the same domain always yields the same company."""
    seed = int(hashlib.sha256(domain.encode()).hexdigest(), 16)
    rng = random.Random(seed)
    label = domain.split(".")[0].replace("-", " ").title()
    return {
        "domain": domain,
        "name": label,
        "industry": rng.choice(INDUSTRIES),
        "employees": rng.randint(5, 50000),
    }


@app.route("/health")
def health() -> tuple[Response, int]:
    return jsonify({"status": "ok"}), 200


@app.route("/companies")
def get_company() -> tuple[Response, int]:
    """
    GET /companies?domain=<domain>

    Returns the company profile for a domain.
    Randomly returns HTTP 500 at the configured failure rate to simulate
    directory instability, which the directory plugin must retry through.
    """
    domain = (request.args.get("domain") or "").strip().lower()
    if not domain:
        return jsonify({"error": "missing_domain", "message": "domain is required"}), 400

    if random.random() < FAILURE_RATE:
        logger.warning("Simulating directory failure (500)")
        return jsonify({"error": "directory_unavailable", "message": "Service temporarily unavailable"}), 500

    if domain in UNKNOWN_DOMAINS:
        return jsonify({"error": "not_found", "message": f"no company for {domain}"}), 404

    logger.info("Returning profile for %s", domain)
    return jsonify(_profile(domain)), 200


if __name__ == "__main__":
    port = int(os.getenv("MOCK_PORT", "9000"))
    logger.info("Starting mock directory API on port %d (failure_rate=%.0f%%)", port, FAILURE_RATE * 100)
    app.run(host="0.0.0.0", port=port)
