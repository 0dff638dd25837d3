from flask import Flask
from flask_cors import CORS
from flask_restful import Api
from .routes import init_routes
from .models import channel_manager

def create_app(root=None):
    app = Flask(__name__)
    CORS(app) # Enable CORS for browser clients
    api = Api(app)

    # Initialize Routes
    init_routes(api)

    # Log root from the argument, else SDDSLOG_ROOT, else ./sddslog
    if root is not None:
        channel_manager.set_root(root)
    channel_manager.ensure_root()
    app.config['SDDSLOG_ROOT'] = str(channel_manager.root)

    return app
