"""
Debate service Flask application factory
"""

import os
import logging
from flask import Flask
from flask_cors import CORS

logger = logging.getLogger(__name__)

# app.config key -> environment variable
ENV_SETTINGS = (
    'SUPABASE_URL', 'SUPABASE_ANON_KEY', 'SUPABASE_SERVICE_ROLE_KEY',
    'GROQ_API_KEY', 'OPENAI_API_KEY', 'ANTHROPIC_API_KEY', 'OPENROUTER_API_KEY',
    'SCRAPER_API_KEY', 'SCRAPERDOGS_API_KEY',
    'RAZORPAY_KEY_ID', 'RAZORPAY_KEY_SECRET',
    'MOCK_DB_FILE',
)

LLM_PROVIDER_KEYS = {
    'groq': 'GROQ_API_KEY',
    'openai': 'OPENAI_API_KEY',
    'anthropic': 'ANTHROPIC_API_KEY',
    'openrouter': 'OPENROUTER_API_KEY',
}

BLUEPRINTS = (
    ('app.routes', 'main_bp', None),
    ('app.routes', 'api_bp', '/api'),
    ('app.flow_routes', 'flow_bp', '/api/flow'),
    ('app.tool_routes', 'tools_bp', '/api'),
    ('app.data_routes', 'data_bp', '/api'),
    ('app.billing_routes', 'billing_bp', '/api'),
)


def create_app(config_name: str = None) -> Flask:
    """
    Build the debate service app.

    Args:
        config_name: Environment tag stored as ENV_NAME (defaults to FLASK_ENV)

    Returns:
        Flask app with blueprints registered and services attached
    """
    import importlib

    app = Flask(__name__)
    app.config.update({name: os.getenv(name) for name in ENV_SETTINGS})
    app.config.update(
        ENV_NAME=config_name or os.getenv('FLASK_ENV', 'production'),
        SECRET_KEY=os.getenv('FLASK_SECRET_KEY', 'dev-secret-key-not-for-production'),
        CONTEXT_DB_PATH=os.getenv('CONTEXT_DB_PATH', 'storage/data/context.db'),
        DEV_MODE=os.getenv('DEV_MODE', 'false').lower() == 'true',
        MAX_CONTENT_LENGTH=16 * 1024 * 1024,
    )

    CORS(app, resources={
        r"/api/*": {
            "origins": os.getenv('ALLOWED_ORIGINS', '*').split(','),
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"]
        }
    })

    for module_name, attr, prefix in BLUEPRINTS:
        blueprint = getattr(importlib.import_module(module_name), attr)
        app.register_blueprint(blueprint, url_prefix=prefix)

    with app.app_context():
        _attach_services(app)

    logger.info(f"Debate service app created (env={app.config['ENV_NAME']}, dev_mode={app.config['DEV_MODE']})")
    return app


def _attach_services(app: Flask) -> None:
    """Hang the store, LLM client, context store and orchestrator off the app."""
    from app.auth import SupabaseAuth, MockSupabaseAuth
    from debate.analytics import AnalyticsService
    from debate.llm_client import LLMClient
    from debate.orchestrator import DebateOrchestrator
    from debate.tools.memory import ContextStore

    if app.config['DEV_MODE']:
        logger.warning("DEV_MODE: using the local JSON store instead of Supabase")
        app.supabase_auth = MockSupabaseAuth(db_file=app.config.get('MOCK_DB_FILE'))
    else:
        app.supabase_auth = SupabaseAuth(
            app.config['SUPABASE_URL'],
            app.config['SUPABASE_ANON_KEY'],
            app.config['SUPABASE_SERVICE_ROLE_KEY'],
        )

    # missing keys only fail when that provider is called
    app.llm_client = LLMClient(api_keys={
        provider: app.config.get(setting) for provider, setting in LLM_PROVIDER_KEYS.items()
    })
    app.context_store = ContextStore(app.config['CONTEXT_DB_PATH'])
    app.orchestrator = DebateOrchestrator(
        store=app.supabase_auth,
        llm_client=app.llm_client,
        context_store=app.context_store
    )
    app.analytics = AnalyticsService(app.supabase_auth)
