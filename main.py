import logging
from flask import request, jsonify
from dashboard import create_app
from dotenv import load_dotenv

load_dotenv()

# Initialize the app
app = create_app()


@app.errorhandler(404)
def page_not_found(error):
    return jsonify({"success": False, "message": f"Page not found: {request.path}"}), 404


@app.errorhandler(413)
def file_too_large(error):
    return jsonify({"success": False, "message": f"❌ Video file size must be less than {app.config['MAX_VIDEO_SIZE_MB']} MB"}), 413


@app.errorhandler(500)
def internal_server_error(error):
    app.logger.error(f"500 on {request.method} {request.path}: {error}")
    return jsonify({"success": False, "message": "An unexpected error has occurred."}), 500


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    app.run(debug=True , host="0.0.0.0" , port=5000)
