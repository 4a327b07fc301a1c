import sys

import redis
from flask import Flask, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge

from audiosearch.config import AudioConfig, ServerConfig, StoreConfig
from audiosearch.database import FingerprintDatabase, create_client, index_audio
from audiosearch.errors import DecodeError, StoreError
from audiosearch.fft import FFT_BACKENDS, FFT_DETAILS
from audiosearch.logging_config import setup_logger
from audiosearch.matcher import identify_audio

logger = setup_logger(__name__)


def read_upload():
    """Return (data, None) or (None, error_response) for the 'file' field"""
    file = request.files.get("file")
    if file is None:
        return None, (jsonify({"error": "file is required"}), 400)

    data = file.read()
    if not data:
        return None, (jsonify({"error": "empty file"}), 400)
    return data, None


def create_app(database, backend=None):
    """
    Build the Flask app around a FingerprintDatabase.

    Args:
        database: FingerprintDatabase sharing the process-wide redis client
        backend: Default FFT backend for /fingerprint and /recognize
    """
    default_backend = backend or AudioConfig.FFT_BACKEND
    if default_backend not in FFT_BACKENDS:
        raise ValueError(
            f"unknown FFT backend {default_backend!r}, expected one of {FFT_BACKENDS}"
        )

    app = Flask(__name__)
    CORS(app)
    app.config["MAX_CONTENT_LENGTH"] = ServerConfig.MAX_CONTENT_LENGTH

    @app.errorhandler(DecodeError)
    def handle_decode_error(e):
        logger.warning(f"✗ Rejected audio: {e}")
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(StoreError)
    def handle_store_error(e):
        return jsonify({"error": str(e)}), 500

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        limit = app.config["MAX_CONTENT_LENGTH"]
        logger.warning(f"✗ Rejected upload larger than {limit} bytes")
        return jsonify({"error": f"upload exceeds {limit} bytes"}), 413

    def fingerprint(fft_backend):
        song_name = request.form.get("name") or request.args.get("name", "")
        if not song_name:
            return jsonify({"error": "song name is required"}), 400

        data, error = read_upload()
        if error:
            return error

        replace = request.values.get("replace", "").lower() in ("1", "true", "yes")
        num_hashes, _ = index_audio(
            song_name, data, database, backend=fft_backend, replace=replace
        )

        return jsonify(
            {
                "song_name": song_name,
                "hashes": num_hashes,
                "fft_impl": fft_backend,
                "fft_details": FFT_DETAILS[fft_backend],
            }
        )

    def recognize(fft_backend):
        data, error = read_upload()
        if error:
            return error

        result = identify_audio(data, database, backend=fft_backend)

        response = {
            "song_name": result["song_name"],
            "confidence": result["similarity"],
            "fft_impl": fft_backend,
        }
        if not result["song_name"]:
            response["confidence"] = 0
            response["message"] = "no match found"
        return jsonify(response)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.route("/fingerprint", methods=["POST"])
    def api_fingerprint():
        return fingerprint(default_backend)

    @app.route("/fingerprint/custom", methods=["POST"])
    def api_fingerprint_custom():
        return fingerprint("custom")

    @app.route("/recognize", methods=["POST"])
    def api_recognize():
        return recognize(default_backend)

    @app.route("/recognize/custom", methods=["POST"])
    def api_recognize_custom():
        return recognize("custom")

    @app.route("/fingerprint/<path:name>", methods=["DELETE"])
    def api_delete_song(name):
        database.delete_song(name)
        return jsonify({"song_name": name, "deleted": True})

    @app.route("/songs")
    def api_songs():
        return jsonify({"songs": database.list_songs()})

    return app


def main():
    client = create_client()
    try:
        client.ping()
    except redis.RedisError as e:
        logger.error(f"Failed to connect to Redis at {StoreConfig.REDIS_ADDR}: {e}")
        sys.exit(1)
    logger.info(f"✓ Connected to Redis at {StoreConfig.REDIS_ADDR}")

    try:
        app = create_app(FingerprintDatabase(client))
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        client.close()
        sys.exit(1)

    logger.info(f"\n🌐 Starting web server on port {ServerConfig.PORT}\n")
    try:
        app.run(host="0.0.0.0", port=ServerConfig.PORT, debug=False, threaded=True)
    finally:
        logger.info("Shutting down server...")
        client.close()
        logger.info("Server exited")


if __name__ == "__main__":
    main()
