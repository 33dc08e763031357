from flask import Blueprint

main_bp = Blueprint('main', __name__)

from tangram_bridge.main import routes
