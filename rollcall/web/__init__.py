"""
Web dashboard (Flask).

- server: Flask app + API
- feed: Notifier giữ trạng thái live cho dashboard
"""
