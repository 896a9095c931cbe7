import os

import click
from flask import Flask

from Controllers.errorController import error_bp
from Routes.shopRoutes import shop_routes
from Utils.config import get_env, get_bool
from Utils.db import init_db
from Utils.limiter import limiter
from Utils.logger import setup_logging


# ----------------------------
# Flask app configuration
# ----------------------------
def create_app(overrides=None):
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=get_env("SECRET_KEY", "supersecretkey"),
        MONGODB_URI=get_env("MONGODB_URI", "mongodb://localhost:27017/storefront_db"),
        MONGO_CLIENT_CLASS=None,
        LOG_DIR=get_env("LOG_DIR", "logs"),
        RATELIMIT_ENABLED=get_bool("RATELIMIT_ENABLED", True),
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=get_bool("SESSION_COOKIE_SECURE", False),
    )
    if overrides:
        app.config.update(overrides)

    # ----------------------------
    # Database
    # ----------------------------
    init_db(app.config["MONGODB_URI"], mongo_client_class=app.config["MONGO_CLIENT_CLASS"])

    # ----------------------------
    # Rate Limiter
    # ----------------------------
    limiter.init_app(app)

    # ----------------------------
    # Register blueprints
    # ----------------------------
    app.register_blueprint(error_bp)
    app.register_blueprint(shop_routes)

    @app.route('/robots.txt')
    def robots_txt():
        return """User-agent: *
Allow: /products
Disallow: /api/
Disallow: /admin/
Disallow: /order/
""", 200, {'Content-Type': 'text/plain'}

    # ----------------------------
    # Logging Configuration
    # ----------------------------
    setup_logging(app)

    register_order_commands(app)
    return app


# ==================================================
# CLI ORDER COMMANDS
# ==================================================
def register_order_commands(app):
    """Adds 'flask orders:reconcile' and 'flask orders:pending'."""
    from flask.cli import with_appcontext

    @click.command("orders:reconcile")
    @click.option("--order-id", default=None, help="Only reconcile this order")
    @with_appcontext
    def reconcile_orders(order_id):
        """Confirm Pending card orders whose Stripe session is already paid."""
        from Controllers.orderController import completion_service
        from Services import paymentProviders as providers

        confirmed = completion_service().reconcile_pending_hosted(providers.get_stripe_provider(), order_id=order_id)
        if not confirmed:
            click.echo("No pending orders needed reconciling.")
            return
        for confirmed_id in confirmed:
            click.echo(f"✅ Confirmed {confirmed_id}")
        click.echo(f"{len(confirmed)} order(s) confirmed.")

    @click.command("orders:pending")
    @click.option("--method", type=click.Choice(["stripe", "paypal"]), default=None)
    @with_appcontext
    def pending_orders(method):
        """List Pending orders with their payment reference."""
        from Models.orderRepository import OrderRepository

        pending = OrderRepository().list_pending(payment_method=method)
        if not pending:
            click.echo("No pending orders.")
            return
        click.echo("\n📦 Pending Orders\n──────────────────────────────")
        for order in pending:
            click.echo(
                f"{order.id}  {order.created_at:%Y-%m-%d %H:%M}  {order.payment_method:<7} "
                f"{order.payment_reference}  {order.total:.2f}  {order.email}"
            )
        click.echo("──────────────────────────────")
        click.echo(f"Total pending: {len(pending)}")

    app.cli.add_command(reconcile_orders)
    app.cli.add_command(pending_orders)


# ----------------------------
# Run the app
# ----------------------------
if __name__ == '__main__':
    port = int(os.getenv('PORT', 4000))
    print(f"App running on port {port}...")
    create_app().run(host='0.0.0.0', port=port, debug=False)
