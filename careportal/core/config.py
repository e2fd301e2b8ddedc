from pydantic_settings import BaseSettings
from typing import Optional, List, Dict
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "CarePortal"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    TESTING: bool = os.getenv("TESTING", "0").lower() in ("1", "true", "t", "yes", "y")

    # Backend REST API consumed by the portal
    BACKEND_API_URL: str = os.getenv("BACKEND_API_URL", "http://localhost:3000/api")
    BACKEND_TIMEOUT: Optional[float] = None  # No timeout unless configured

    # Session store (server-side local storage)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./careportal.db")
    TEST_DATABASE_URL: str = os.getenv("TEST_DATABASE_URL", "sqlite:///./careportal_test.db")

    # Portal session tokens
    SECRET_KEY: str = "your-secret-key-change-this-in-production"
    ALGORITHM: str = "HS256"
    SESSION_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Polling intervals (seconds)
    NOTIFICATION_POLL_SECONDS: float = 15.0
    UNREAD_MESSAGES_POLL_SECONDS: float = 30.0
    CONVERSATION_POLL_SECONDS: float = 10.0
    # Loops of a session nobody has read for this long are stopped
    POLLER_IDLE_SECONDS: float = 90.0
    POLLER_SWEEP_SECONDS: float = 30.0

    # Appointment booking
    BOOKING_WINDOW_DAYS: int = 30
    DEFAULT_LOCATION: str = "Main Clinic"
    APPOINTMENT_LOCATIONS: List[str] = ["Main Clinic", "North Branch", "Downtown Office", "Medical Center"]
    APPOINTMENT_FEES: Dict[str, int] = {
        "Consultation": 50,
        "Follow-up": 30,
        "Check-up": 50,
        "Urgent": 80,
        "Specialist": 100,
    }

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:8080", "http://testserver"]

    @property
    def get_database_url(self):
        """Return the appropriate database URL based on if we're testing"""
        if self.TESTING:
            return self.TEST_DATABASE_URL
        return self.DATABASE_URL

    class Config:
        env_file = ".env"
        case_sensitive = True

# Create settings instance
settings = Settings()
