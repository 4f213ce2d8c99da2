"""Sample servlet: a small Flask application mounted at /hello"""
from flask import Flask, jsonify, request


def create_app(greeting='Hello'):
    app = Flask(__name__)

    @app.route('/')
    def index():
        name = request.args.get('name', 'world')
        return jsonify({'message': f"{greeting}, {name}!"})

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'secure': request.is_secure})

    return app
