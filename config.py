"""
Configuration settings for the WeChat service account bridge
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration"""
    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    TESTING = False

    # WeChat Service Account settings
    WECHAT_APP_ID = os.environ.get('WECHAT_APP_ID', '')
    WECHAT_APP_SECRET = os.environ.get('WECHAT_APP_SECRET', '')
    WECHAT_TOKEN = os.environ.get('WECHAT_TOKEN', '')
    WECHAT_ENCODING_AES_KEY = os.environ.get('WECHAT_ENCODING_AES_KEY', '')
    WECHAT_API_BASE_URL = os.environ.get('WECHAT_API_BASE_URL', 'https://api.weixin.qq.com').rstrip('/')

    # Upstream HTTP behaviour
    WECHAT_HTTP_TIMEOUT = float(os.environ.get('WECHAT_HTTP_TIMEOUT', '10'))
    WECHAT_HTTP_RETRIES = int(os.environ.get('WECHAT_HTTP_RETRIES', '2'))
    WECHAT_TOKEN_SAFETY_MARGIN = int(os.environ.get('WECHAT_TOKEN_SAFETY_MARGIN', '300'))  # seconds
    WECHAT_TEMPLATE_SEND_INTERVAL = float(os.environ.get('WECHAT_TEMPLATE_SEND_INTERVAL', '0.05'))
    WECHAT_USER_SYNC_INTERVAL = float(os.environ.get('WECHAT_USER_SYNC_INTERVAL', '0.1'))

    # Passive reply texts
    WECHAT_WELCOME_MESSAGE = os.environ.get('WECHAT_WELCOME_MESSAGE', '欢迎关注！感谢您的支持 🎉')
    WECHAT_ECHO_PREFIX = os.environ.get('WECHAT_ECHO_PREFIX', '您发送了: ')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    ACCESS_LOG_LEVEL = os.environ.get('ACCESS_LOG_LEVEL', 'ERROR')  # e.g. ERROR/WARNING/INFO/NONE
    REQUEST_LOG_ENABLED = os.environ.get('REQUEST_LOG_ENABLED', 'True').lower() == 'true'
    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(os.getcwd(), 'logs'))
    REQUEST_LOG_MAX_LINES = int(os.environ.get('REQUEST_LOG_MAX_LINES', '10000'))

    # Application settings
    DEBUG = os.environ.get('DEBUG', 'False').lower() == 'true'
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', 3000))


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration: fixed credentials, no delays, no request log"""
    TESTING = True
    WECHAT_APP_ID = 'wx-test-app'
    WECHAT_APP_SECRET = 'test-secret'
    WECHAT_TOKEN = 'test-token'
    WECHAT_API_BASE_URL = 'https://api.weixin.test'
    WECHAT_TEMPLATE_SEND_INTERVAL = 0
    WECHAT_USER_SYNC_INTERVAL = 0
    WECHAT_WELCOME_MESSAGE = '欢迎关注！感谢您的支持 🎉'
    WECHAT_ECHO_PREFIX = '您发送了: '
    REQUEST_LOG_ENABLED = False


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
