from flask import Flask

from tangram_bridge.bridge import BridgeConfig, FrameProcessor, InMemoryCalibrationStore
from tangram_bridge.logger import configure_logging


def create_app(config=None, store=None):
    """
    Flask application factory.

    Args:
        config: BridgeConfig, or a mapping accepted by BridgeConfig.from_dict()
        store: CalibrationStore (in-memory if None)
    """
    app = Flask(__name__)

    if config is None:
        config = BridgeConfig()
    elif not isinstance(config, BridgeConfig):
        config = BridgeConfig.from_dict(config)

    configure_logging(debug=app.debug)

    app.extensions['frame_processor'] = FrameProcessor(
        config, store if store is not None else InMemoryCalibrationStore()
    )

    # Register blueprints
    from tangram_bridge.main import main_bp
    app.register_blueprint(main_bp)

    return app
