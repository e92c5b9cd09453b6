# rollcall/web/server.py
"""
Web dashboard để xem điểm danh từ xa qua WiFi.
Truy cập: http://<IP_Pi>:5000
"""
import io
import socket
import logging

from flask import Flask, abort, jsonify, render_template_string, request, send_file

from ..core.errors import PersistenceError

logger = logging.getLogger(__name__)

HTML_TEMPLATE = '''
<!DOCTYPE html>
<html>
<head>
    <title>Rollcall</title>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <meta http-equiv="refresh" content="5">
    <style>
        * { font-family: 'Segoe UI', Arial, sans-serif; margin: 0; padding: 0; box-sizing: border-box; }
        body { background: #f5f7fa; color: #333; padding: 15px; }
        .container { max-width: 900px; margin: 0 auto; }
        h1 { color: #2e7d32; margin-bottom: 20px; text-align: center; font-size: 1.5em; }
        .section { background: #fff; border-radius: 12px; padding: 15px; margin-bottom: 15px; border: 1px solid #e0e0e0; }
        .highlight { background: linear-gradient(135deg, #4CAF50, #43a047); color: #fff; padding: 15px; border-radius: 10px; }
        .error { color: #c62828; }
        table { width: 100%; border-collapse: collapse; font-size: 0.9em; }
        th { background: #4CAF50; color: #fff; padding: 8px; text-align: left; }
        td { padding: 8px; border-bottom: 1px solid #e0e0e0; }
    </style>
</head>
<body>
<div class="container">
    <h1>📋 Điểm danh</h1>
    <div class="section">
        {% if status.highlight %}
        <div class="highlight">
            <b>{{ status.highlight.name }}</b> ({{ status.highlight.group }}) - {{ '%.2f' % status.highlight.score }}
        </div>
        {% else %}
        <div>Chưa có ai trước camera</div>
        {% endif %}
        {% if status.error %}<p class="error">{{ status.error }}</p>{% endif %}
    </div>
    <div class="section">
        <table>
            <tr><th>Thời gian</th><th>Tên</th><th>Lớp</th><th>Score</th></tr>
            {% for e in status.recent %}
            <tr><td>{{ e.time }}</td><td>{{ e.name }}</td><td>{{ e.group }}</td><td>{{ '%.2f' % e.score }}</td></tr>
            {% endfor %}
        </table>
    </div>
    <p>Profile: {{ status.profile or '-' }} | Học sinh: {{ total }}</p>
</div>
</body>
</html>
'''


def _identity_json(identity) -> dict:
    return {
        'id': identity.id,
        'name': identity.name,
        'group': identity.group,
        'school_id': identity.school_id,
        'descriptor_model': identity.descriptor_model,
        'created_at': identity.created_at,
    }


def _event_json(event, names: dict) -> dict:
    return {
        'id': event.id,
        'student_id': event.identity_id,
        'name': names.get(event.identity_id),
        'school_id': event.school_id,
        'timestamp': event.timestamp,
        'score': round(float(event.score), 4),
    }


def create_app(store, feed):
    """
    Tạo Flask app đọc từ store (SQLite) và feed (trạng thái live).
    """
    app = Flask(__name__)

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(e):
        return jsonify({'error': str(e)}), 503

    @app.route('/')
    def index():
        """Trang dashboard"""
        return render_template_string(
            HTML_TEMPLATE,
            status=feed.snapshot(),
            total=len(store.list_identities()),
        )

    @app.route('/api/status')
    def api_status():
        """Highlight hiện tại + sự kiện gần nhất của phiên live"""
        return jsonify(feed.snapshot())

    @app.route('/api/events')
    def api_events():
        """Sự kiện nhận diện gần nhất (từ database)"""
        limit = request.args.get('limit', default=20, type=int)
        names = {i.id: i.name for i in store.list_identities()}
        return jsonify([_event_json(e, names) for e in store.recent_events(limit)])

    @app.route('/api/students')
    def api_students():
        """Danh sách học sinh đã đăng ký"""
        school_id = request.args.get('school_id')
        return jsonify([_identity_json(i) for i in store.list_identities(school_id)])

    @app.route('/api/students/<student_id>/photo')
    def api_student_photo(student_id):
        """Ảnh chụp lúc đăng ký (JPEG)"""
        identity = store.get_identity(student_id)
        if identity is None or not identity.photo:
            logger.debug(f"Không có ảnh cho {student_id}")
            abort(404)
        return send_file(io.BytesIO(identity.photo), mimetype='image/jpeg')

    return app


def get_local_ip():
    """Lấy địa chỉ IP local của máy"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError:
        return "localhost"


def run_server(app, host='0.0.0.0', port=5000):
    """Chạy web server (blocking)"""
    local_ip = get_local_ip()
    print(f"\n{'='*50}")
    print("🌐 Web Dashboard đang chạy!")
    print("📱 Truy cập từ điện thoại/máy khác:")
    print(f"   http://{local_ip}:{port}")
    print(f"💻 Truy cập local: http://localhost:{port}")
    print(f"{'='*50}\n")
    app.run(host=host, port=port, debug=False, threaded=True, use_reloader=False)
