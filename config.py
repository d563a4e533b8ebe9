import os

basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    """Base configuration"""
    MES_VERSION = '1.0.0'
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance', 'harness_mes.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds a store call may wait on a lock before failing
    STORE_TIMEOUT_SECONDS = float(os.environ.get('STORE_TIMEOUT_SECONDS') or 10)

    # Sequence numbering
    SEQUENCE_PADDING = 4         # 0001-9999
    BUNDLE_SEQUENCE_PADDING = 3  # 001-999
    MAX_SEQUENCE = 9999

    # Genealogy
    TRACE_MAX_DEPTH = int(os.environ.get('TRACE_MAX_DEPTH') or 50)

    # Products
    DEFAULT_BUNDLE_QTY = 100

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'DEBUG'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    # In production, point DATABASE_URL at a server database with row locking


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///:memory:'
    STORE_TIMEOUT_SECONDS = 30
    LOG_LEVEL = 'DEBUG'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
