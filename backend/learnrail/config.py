"""Application settings and validation."""

import os

DEFAULT_SECRET = "change_me_for_prod"


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRY_SECONDS: int
    JWT_REFRESH_EXPIRY_SECONDS: int
    DATABASE_URL: str
    MOUNT_PREFIX: str
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    DEFAULT_PAGE_SIZE: int
    MAX_PAGE_SIZE: int
    AI_PROVIDER: str
    AI_MODEL: str
    AI_TIMEOUT_SECONDS: float
    ANTHROPIC_API_KEY: str
    OPENAI_API_KEY: str

    # points awarded by the gamification ledger
    POINTS_LESSON_COMPLETE = 10
    POINTS_QUIZ_PASS = 25
    POINTS_COURSE_COMPLETE = 100
    POINTS_GOAL_COMPLETE = 50
    POINTS_GOAL_CREATED = 5
    POINTS_GOAL_CHECKIN = 3
    POINTS_MILESTONE_COMPLETE = 15
    POINTS_ENROLL = 5

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRY_SECONDS = int(os.getenv("JWT_EXPIRY_SECONDS", str(86400 * 7)))  # 7 days
        self.JWT_REFRESH_EXPIRY_SECONDS = int(os.getenv("JWT_REFRESH_EXPIRY_SECONDS", str(86400 * 30)))
        self.DATABASE_URL = os.getenv("DATABASE_URL", "")
        self.MOUNT_PREFIX = os.getenv("MOUNT_PREFIX", "").rstrip("/")
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
        self.MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))
        self.AI_PROVIDER = os.getenv("AI_PROVIDER", "claude").lower()
        self.AI_MODEL = os.getenv("AI_MODEL", "claude-3-haiku-20240307")
        self.AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))
        self.ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == DEFAULT_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRY_SECONDS <= 0 or self.JWT_REFRESH_EXPIRY_SECONDS <= 0:
            raise RuntimeError("token lifetimes must be positive")
        if self.DEFAULT_PAGE_SIZE < 1 or self.MAX_PAGE_SIZE < self.DEFAULT_PAGE_SIZE:
            raise RuntimeError("MAX_PAGE_SIZE must be >= DEFAULT_PAGE_SIZE >= 1")


settings = Settings()
