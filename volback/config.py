import os


class Config:
    """Base configuration"""

    # Data directory for the history database and logs
    DATA_DIR = os.environ.get('VOLBACK_DATA_DIR') or os.path.join(os.getcwd(), '.volback')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f'sqlite:///{os.path.join(DATA_DIR, "volback.db")}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Backup settings document (backup_directory, default_max_backups, volumes)
    CONFIG_FILE = os.environ.get('VOLBACK_CONFIG_FILE') or 'backup_config.json'
    DEFAULT_BACKUP_DIR = os.path.join(os.getcwd(), 'docker_volume_backups')
    DEFAULT_MAX_BACKUPS = 5

    # Archiver container
    ARCHIVER_IMAGE = os.environ.get('VOLBACK_ARCHIVER_IMAGE') or 'alpine'
    DOCKER_HOST = os.environ.get('DOCKER_HOST')

    # Scheduler
    DEFAULT_SCHEDULE = '0 2 * * *'
    SCHEDULER_TIMEZONE = 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = True
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
