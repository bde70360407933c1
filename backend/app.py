from flask import Flask, Response, request, jsonify, stream_with_context
from flask_cors import CORS
import os
import sys
from datetime import datetime
import logging

# Setup Logging
log_file = os.environ.get('LOG_FILE', 'server.log')
logging.basicConfig(
    filename=log_file,
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s'
)

# Add the project root (parent of backend) to sys.path for `python backend/app.py`
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from backend.ledger.config import Config
from backend.ledger.errors import (
    ConfigurationError, JobTimeoutError, LedgerError, NoTransactionsFoundError, ValidationError
)
from backend.ledger.events import to_sse
from backend.ledger.extract import ReaderFactory, split_pages
from backend.ledger.pipeline import StatementPipeline, combine_statements
from backend.supabase_store import SupabaseStatementStore

ALLOWED_ORIGINS = os.environ.get(
    'CORS_ORIGINS', 'http://localhost:5173,http://localhost:3000'
).split(',')


def status_for(error: LedgerError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NoTransactionsFoundError):
        return 422
    if isinstance(error, ConfigurationError):
        return 500
    if isinstance(error, JobTimeoutError):
        return 504
    return 502


def validate_upload(file, max_mb: int = Config.MAX_FILE_MB) -> str:
    """Check presence, extension and size of an uploaded file; returns the extension."""
    if file is None:
        raise ValidationError("No file part")
    if file.filename == '':
        raise ValidationError("No selected file")

    file_ext = file.filename.rsplit('.', 1)[-1].lower() if '.' in file.filename else ''
    if file_ext not in Config.ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported file type: .{file_ext}" if file_ext else "File has no extension",
            detail=f"Allowed: {', '.join(sorted(Config.ALLOWED_EXTENSIONS))}"
        )

    file.seek(0, os.SEEK_END)
    file_size_mb = file.tell() / (1024 * 1024)
    file.seek(0)
    if file_size_mb > max_mb:
        raise ValidationError(f"File too large ({file_size_mb:.1f}MB). Max is {max_mb}MB.")
    return file_ext


def save_upload(file, upload_folder: str) -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    safe_filename = f"{timestamp}_{os.path.basename(file.filename).replace(' ', '_')}"
    temp_path = os.path.join(upload_folder, safe_filename)
    file.save(temp_path)
    return temp_path


def _remove(path: str) -> None:
    if path and os.path.exists(path):
        os.remove(path)


def create_app(pipeline: StatementPipeline = None, store: SupabaseStatementStore = None,
               upload_folder: str = None) -> Flask:
    app = Flask(__name__)
    CORS(app, resources={r"/*": {"origins": ALLOWED_ORIGINS}})

    # Built once per process; ConfigurationError here stops startup
    pipeline = pipeline or StatementPipeline.from_config()
    store = store or SupabaseStatementStore()
    upload_folder = upload_folder or os.path.join(os.getcwd(), Config.UPLOAD_FOLDER)
    os.makedirs(upload_folder, exist_ok=True)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(e: LedgerError):
        status = status_for(e)
        if status == 500:
            return jsonify({"success": False, "error": "Configuration error", "detail": e.message}), status
        return jsonify({"success": False, "error": e.message, "detail": e.detail}), status

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            "status": "ok",
            "extraction": {
                "mode": Config.EXTRACTION_MODE,
                "provider": Config.EXTRACTION_PROVIDER,
                "enabled": pipeline.uses_extraction,
            },
            "persistence": store.configured,
        })

    @app.route('/parse-statement-stream', methods=['POST'])
    def parse_statement_stream():
        file = request.files.get('file')
        file_ext = validate_upload(file)
        # Save now; the request stream is gone once the generator runs
        temp_path = save_upload(file, upload_folder)
        logging.info(f"Streaming parse of {file.filename} ({file_ext})")

        def generate():
            try:
                for event in pipeline.process(temp_path, file_ext):
                    yield to_sse(event)
            finally:
                _remove(temp_path)

        return Response(stream_with_context(generate()), mimetype='text/event-stream',
                        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})

    @app.route('/parse-statement', methods=['POST'])
    def parse_statement():
        file = request.files.get('file')
        file_ext = validate_upload(file)
        temp_path = save_upload(file, upload_folder)
        try:
            try:
                payload = ReaderFactory.get_reader(file_ext).read(temp_path)
            except (ValueError, OSError) as e:
                raise ValidationError("Could not read document", detail=str(e)) from e
            result = pipeline.parse(payload["pages"])
        finally:
            _remove(temp_path)

        return jsonify({
            "success": True,
            "statement": result,
            "meta": result["meta"],
            "transaction_count": len(result["transactions"]),
        })

    @app.route('/parse-text', methods=['POST'])
    def parse_text():
        data = request.get_json(silent=True) or {}
        pages = data.get('pages')
        if pages is None and isinstance(data.get('text'), str):
            pages = split_pages(data['text'])
        if not isinstance(pages, list) or not all(isinstance(p, str) for p in pages):
            raise ValidationError("Expected JSON body with 'pages' (list of strings) or 'text'")

        result = pipeline.parse(pages)
        return jsonify({
            "success": True,
            "statement": result,
            "meta": result["meta"],
            "transaction_count": len(result["transactions"]),
        })

    @app.route('/statements/combine', methods=['POST'])
    def combine():
        data = request.get_json(silent=True) or {}
        statements = data.get('statements')
        if not isinstance(statements, list) or not statements:
            raise ValidationError("Expected JSON body with a non-empty 'statements' list")
        if not all(isinstance(s, dict) and isinstance(s.get('transactions'), list) for s in statements):
            raise ValidationError("Every statement needs a 'transactions' list")

        return jsonify({"success": True, **combine_statements(statements)})

    @app.route('/statements', methods=['POST'])
    def save_statement():
        data = request.get_json(silent=True) or {}
        statement = data.get('statement')
        if not isinstance(statement, dict):
            raise ValidationError("Expected JSON body with a 'statement' object")

        record = store.save_statement(statement, file_name=data.get('file_name'))
        return jsonify({"success": True, **record}), 201

    @app.route('/statements', methods=['GET'])
    def list_statements():
        limit = request.args.get('limit', 50, type=int)
        return jsonify(store.list_statements(limit=limit))

    return app


if __name__ == '__main__':
    logging.info("Server starting up...")
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_DEBUG', 'False') == 'True')
