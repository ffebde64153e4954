from flask import Flask
from yarn_erp.config import Config
from yarn_erp.extensions import db, cors
from yarn_erp.utils.error_utils import register_error_handlers
from yarn_erp.utils.logging_utils import setup_logging

def create_app():
    app = Flask(__name__)
    app.config.from_object(Config)

    db.init_app(app)
    cors.init_app(app, origins=app.config['CORS_ORIGINS'])
    setup_logging(app)

    # --- MODELS ---
    # Imported before any blueprint so SQLAlchemy registers every table.
    from yarn_erp import models  # noqa: F401

    # --- ROUTES ---
    from yarn_erp.api.routes_auth import auth_bp
    from yarn_erp.api.routes_users import users_bp
    from yarn_erp.api.routes_asu import asu_bp
    from yarn_erp.api.routes_count_products import count_products_bp
    from yarn_erp.api.routes_dyeing_firms import dyeing_firms_bp
    from yarn_erp.api.routes_dyeing import dyeing_bp
    from yarn_erp.api.routes_parties import parties_bp
    from yarn_erp.api.routes_inventory import inventory_bp
    from yarn_erp.api.routes_production_jobs import production_bp
    from yarn_erp.api.routes_work_orders import bom_bp, work_orders_bp, costings_bp
    from yarn_erp.api.routes_audit import audit_bp
    from yarn_erp.api.routes_dashboard import dashboard_bp, health_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)

    # One blueprint, one registration per ASU unit
    for unit in (1, 2):
        app.register_blueprint(
            asu_bp,
            url_prefix=f'/api/asu-unit{unit}',
            name=f'asu_unit{unit}',
            url_defaults={'unit': unit}
        )

    app.register_blueprint(count_products_bp)
    app.register_blueprint(dyeing_firms_bp)
    app.register_blueprint(dyeing_bp)
    app.register_blueprint(parties_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(production_bp)
    app.register_blueprint(bom_bp)
    app.register_blueprint(work_orders_bp)
    app.register_blueprint(costings_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(health_bp)

    register_error_handlers(app)

    return app
