import os
from dotenv import load_dotenv

load_dotenv()

# PyJWT warns about HS256 keys shorter than 32 bytes
DEV_JWT_SECRET = 'festivalsphere-dev-secret-change-me-in-production'


# All runtime settings are read from the environment (or a local .env file)
class Config:
    DATABASE_URL = os.getenv('DATABASE_URL')
    DATABASE_NAME = os.getenv('DATABASE_NAME', 'festivalsphere')
    JWT_SECRET = os.getenv('JWT_SECRET', DEV_JWT_SECRET)
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRE_DAYS = int(os.getenv('JWT_EXPIRE_DAYS', 30))
    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000')
    PUBLIC_DIR = os.getenv('PUBLIC_DIR', 'public')
    UPLOAD_DIR = os.getenv('UPLOAD_DIR', 'uploads')
    MAX_IMAGE_SIZE = 5 * 1024 * 1024
    PORT = int(os.getenv('PORT', 8000))
