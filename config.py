"""
Application Configuration

Centralizes all Flask, generation and scheduling settings.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Base directory of the application
BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    """Base configuration class."""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-only-change-in-production')

    # SQLAlchemy settings
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///planner.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Content generation
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')
    GENERATION_TIMEOUT = float(os.environ.get('GENERATION_TIMEOUT', '60'))

    # Recipe generation pool
    RECIPE_WORKERS = int(os.environ.get('RECIPE_WORKERS', '4'))
    # Units in flight longer than this are forced to a timeout failure
    RECIPE_UNIT_DEADLINE = float(os.environ.get('RECIPE_UNIT_DEADLINE', '180'))
    SETTLEMENT_SWEEP_INTERVAL = float(os.environ.get('SETTLEMENT_SWEEP_INTERVAL', '5'))

    # Shopping list fill: False = categorize only, True = merge similar ingredients
    SHOPPING_MERGE_INGREDIENTS = os.environ.get('SHOPPING_MERGE_INGREDIENTS', '0') == '1'

    # Notifications
    NOTIFY_WEBHOOK_URL = os.environ.get('NOTIFY_WEBHOOK_URL', '')
    NOTIFY_TIMEOUT = float(os.environ.get('NOTIFY_TIMEOUT', '10'))

    # Scheduled trigger expiration (seconds a background run may take)
    SCHEDULER_EXPIRATION = float(os.environ.get('SCHEDULER_EXPIRATION', '600'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    GENERATION_TIMEOUT = 5
    RECIPE_UNIT_DEADLINE = 30
    SETTLEMENT_SWEEP_INTERVAL = 0.05
    NOTIFY_WEBHOOK_URL = ''


# Configuration dictionary for easy access
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(env=None):
    """Get configuration based on environment."""
    if env is None:
        env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
