#!/usr/bin/env python3
"""
Multi-Agent Debate Service - Entry Point

Usage:
    python run.py [run|dev|prod|check|version] [--host HOST] [--port PORT] [--debug]
    gunicorn --bind 0.0.0.0:5000 --workers 4 --timeout 120 "run:create_application()"

Reads settings from the environment (and .env): FLASK_ENV, FLASK_DEBUG,
FLASK_HOST, FLASK_PORT, FLASK_SECRET_KEY, LOG_LEVEL, DEV_MODE, AI_PROVIDER,
the Supabase keys, the LLM provider keys, the scraper keys and the Razorpay keys.
"""

import os
import sys
import json
import atexit
import signal
import logging
import argparse
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Any, List, Tuple, Callable

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.absolute()
VERSION = '1.0.0'

LLM_KEY_VARS = ('GROQ_API_KEY', 'OPENAI_API_KEY', 'ANTHROPIC_API_KEY', 'OPENROUTER_API_KEY')
SUPABASE_VARS = {
    'url': 'SUPABASE_URL',
    'anon_key': 'SUPABASE_ANON_KEY',
    'service_role_key': 'SUPABASE_SERVICE_ROLE_KEY',
}

# model-list endpoints that accept a Bearer key
PROVIDER_CHECKS = {
    'GROQ_API_KEY': 'https://api.groq.com/openai/v1/models',
    'OPENAI_API_KEY': 'https://api.openai.com/v1/models',
    'OPENROUTER_API_KEY': 'https://openrouter.ai/api/v1/models',
}

NOISY_LOGGERS = ('urllib3', 'httpx', 'httpcore', 'werkzeug')
CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s'

load_dotenv(PROJECT_ROOT / '.env')


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() == 'true'


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------

class JSONFormatter(logging.Formatter):
    """Structured log line for the .jsonl log."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'ts': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'where': f"{record.module}.{record.funcName}:{record.lineno}",
            'thread': record.threadName,
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _handler(handler: logging.Handler, formatter: logging.Formatter, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> logging.Logger:
    """Console plus daily text and JSONL files under storage/logs/."""
    level_name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)

    log_dir = PROJECT_ROOT / 'storage' / 'logs'
    log_dir.mkdir(parents=True, exist_ok=True)
    stem = log_dir / f"debate_{datetime.now():%Y%m%d}"

    text_format = logging.Formatter(CONSOLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    root = logging.getLogger()
    root.setLevel(level)
    for handler in (
        _handler(logging.StreamHandler(sys.stdout), text_format, level),
        _handler(logging.FileHandler(f"{stem}.log", encoding='utf-8'), text_format, level),
        _handler(logging.FileHandler(f"{stem}.jsonl", encoding='utf-8'), JSONFormatter(), level),
    ):
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger('debate')
    logger.info(f"Logging to {stem}.log / .jsonl at {level_name}")
    return logger


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------

def validate_configuration() -> Dict[str, Any]:
    """
    Collect runtime settings and stop the process when a required one is missing.

    Required: a secret key in production, the Supabase trio unless DEV_MODE,
    and at least one LLM provider key. Scraper and Razorpay keys only warn.
    """
    logger = logging.getLogger('debate.settings')

    env = os.getenv('FLASK_ENV', 'production')
    config: Dict[str, Any] = {
        'flask': {
            'env': env,
            'debug': _env_flag('FLASK_DEBUG'),
            'host': os.getenv('FLASK_HOST', '0.0.0.0'),
            'port': int(os.getenv('FLASK_PORT', '5000')),
            'secret_key': os.getenv('FLASK_SECRET_KEY'),
        },
        'dev_mode': _env_flag('DEV_MODE'),
        'supabase': {key: os.getenv(var) for key, var in SUPABASE_VARS.items()},
        'llm_keys': {name: os.getenv(name) for name in LLM_KEY_VARS if os.getenv(name)},
        'search': {
            'scraperapi': bool(os.getenv('SCRAPER_API_KEY')),
            'scrapingdog': bool(os.getenv('SCRAPERDOGS_API_KEY')),
        },
        'razorpay': bool(os.getenv('RAZORPAY_KEY_ID') and os.getenv('RAZORPAY_KEY_SECRET')),
    }

    problems: List[str] = []
    notes: List[str] = []

    if not config['flask']['secret_key']:
        if env == 'production':
            problems.append("FLASK_SECRET_KEY must be set in production")
        else:
            config['flask']['secret_key'] = 'dev-secret-key-not-for-production'
            notes.append("FLASK_SECRET_KEY not set, using the development default")

    if config['dev_mode']:
        notes.append("DEV_MODE on: data lives in the local JSON store")
    else:
        problems.extend(
            f"{var} is required outside DEV_MODE"
            for key, var in SUPABASE_VARS.items() if not config['supabase'][key]
        )

    if not config['llm_keys']:
        problems.append(f"Set at least one of {', '.join(LLM_KEY_VARS)}")
    if not any(config['search'].values()):
        notes.append("No scraper key: ScraperAPI/ScrapingDog searches return sample results")
    if not config['razorpay']:
        notes.append("Razorpay keys missing: billing endpoints answer CONFIG_ERROR")

    for note in notes:
        logger.warning(note)
    if problems:
        for problem in problems:
            logger.error(f"Configuration error: {problem}")
        sys.exit(1)

    logger.info(f"Settings ok ({env}); LLM providers: {', '.join(sorted(config['llm_keys']))}")
    return config


# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------

def create_application():
    """Flask app for the dev server and for gunicorn's "run:create_application()"."""
    logger = logging.getLogger('debate.app')
    try:
        from app import create_app
    except ImportError as e:
        logger.error(f"Cannot import the app package ({e}); run `pip install -e .` first")
        sys.exit(1)

    try:
        app = create_app()
    except Exception as e:
        logger.exception(f"Application factory failed: {e}")
        sys.exit(1)

    logger.info(f"Application ready (env={app.config.get('ENV_NAME')})")
    return app


def cleanup():
    """Flush every log handler; registered with atexit."""
    logger = logging.getLogger('debate.shutdown')
    for handler in logging.root.handlers:
        try:
            handler.flush()
        except (OSError, ValueError) as e:
            logger.error(f"Could not flush {handler!r}: {e}")
    logger.info("Shutdown cleanup done")


def install_signal_handlers(logger: logging.Logger):
    def stop(signum, frame):
        logger.info(f"{signal.Signals(signum).name} received, shutting down")
        cleanup()
        sys.exit(0)

    def reload(signum, frame):
        from debate.config import load_config
        load_config()
        logger.info("SIGHUP received, config/debate.yaml reloaded")

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, stop)
    if hasattr(signal, 'SIGHUP'):
        signal.signal(signal.SIGHUP, reload)


# -----------------------------------------------------------------------------
# Startup checks
# -----------------------------------------------------------------------------

def _check_supabase(config: Dict[str, Any]) -> Tuple[bool, str]:
    if config['dev_mode']:
        return True, "Supabase skipped (DEV_MODE)"
    from supabase import create_client
    try:
        create_client(config['supabase']['url'], config['supabase']['anon_key'])
    except Exception as e:
        return False, f"Supabase client failed: {e}"
    return True, "Supabase client created"


def _check_llm_keys(config: Dict[str, Any]) -> Tuple[bool, str]:
    import httpx

    results = []
    for name, api_key in config['llm_keys'].items():
        url = PROVIDER_CHECKS.get(name)
        if not url:
            results.append(f"{name} present")
            continue
        try:
            status = httpx.get(url, headers={'Authorization': f'Bearer {api_key}'}, timeout=10.0).status_code
        except httpx.HTTPError as e:
            results.append(f"{name} unverified ({e})")
            continue
        results.append(f"{name} {'valid' if status == 200 else f'returned {status}'}")
    # key problems are reported, never fatal
    return True, "; ".join(results)


def _check_storage(config: Dict[str, Any]) -> Tuple[bool, str]:
    probe = PROJECT_ROOT / 'storage' / '.write_test'
    try:
        probe.parent.mkdir(parents=True, exist_ok=True)
        probe.touch()
        probe.unlink()
    except OSError as e:
        return False, f"storage/ not writable: {e}"
    return True, "storage/ writable"


STARTUP_CHECKS: List[Callable[[Dict[str, Any]], Tuple[bool, str]]] = [
    _check_supabase,
    _check_llm_keys,
    _check_storage,
]


def perform_startup_checks(config: Dict[str, Any]) -> bool:
    """Run every startup check and report whether all blocking ones passed."""
    logger = logging.getLogger('debate.startup')
    passed = True
    for check in STARTUP_CHECKS:
        ok, message = check(config)
        if ok:
            logger.info(f"✓ {message}")
        else:
            logger.error(f"✗ {message}")
            passed = False
    return passed


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def main():
    """Start the Flask development server."""
    logger = setup_logging()
    logger.info(f"Multi-Agent Debate Service v{VERSION} (Python {sys.version.split()[0]})")

    config = validate_configuration()
    install_signal_handlers(logger)
    atexit.register(cleanup)

    if not perform_startup_checks(config):
        if config['flask']['env'] == 'production':
            logger.error("Startup checks failed; refusing to start in production")
            sys.exit(1)
        logger.warning("Startup checks failed; starting anyway outside production")

    app = create_application()
    flask = config['flask']
    logger.info(f"Serving on http://{flask['host']}:{flask['port']} (debug={flask['debug']})")

    try:
        app.run(
            host=flask['host'],
            port=flask['port'],
            debug=flask['debug'],
            use_reloader=flask['debug'],
            threaded=True
        )
    except OSError as e:
        logger.error(f"Server could not start on port {flask['port']}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


def _with_defaults(defaults: Dict[str, str]) -> Callable[[], None]:
    def command():
        for key, value in defaults.items():
            os.environ.setdefault(key, value)
        main()
    return command


run_development = _with_defaults({'FLASK_ENV': 'development', 'FLASK_DEBUG': 'true', 'LOG_LEVEL': 'DEBUG'})
run_production = _with_defaults({'FLASK_ENV': 'production', 'FLASK_DEBUG': 'false', 'LOG_LEVEL': 'INFO'})


def check():
    setup_logging()
    sys.exit(0 if perform_startup_checks(validate_configuration()) else 1)


def version():
    print(f"Multi-Agent Debate Service v{VERSION}")
    print(f"Python {sys.version}")


COMMANDS: Dict[str, Callable[[], None]] = {
    'run': main,
    'dev': run_development,
    'prod': run_production,
    'check': check,
    'version': version,
}


def cli(argv: List[str] = None):
    parser = argparse.ArgumentParser(description='Multi-Agent Debate Service')
    parser.add_argument('command', nargs='?', default='run', choices=sorted(COMMANDS))
    parser.add_argument('--host', help='Host to bind to')
    parser.add_argument('--port', type=int, help='Port to bind to')
    parser.add_argument('--debug', action='store_true', help='Enable Flask debug mode')
    args = parser.parse_args(argv)

    overrides = {
        'FLASK_HOST': args.host,
        'FLASK_PORT': str(args.port) if args.port else None,
        'FLASK_DEBUG': 'true' if args.debug else None,
    }
    os.environ.update({k: v for k, v in overrides.items() if v})

    COMMANDS[args.command]()


if __name__ == '__main__':
    cli()
