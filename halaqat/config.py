from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Halaqat Manager'
    app_env: str = 'local'
    app_timezone: str = 'Asia/Riyadh'
    database_url: str = 'sqlite:///./halaqat.db'
    app_base_url: str = 'http://127.0.0.1:8000'
    auth_session_expiry_hours: int = 12
    auth_secret: str = 'change-me'
    auth_min_password_length: int = 6
    bootstrap_admin_name: str = ''
    bootstrap_admin_email: str = ''
    bootstrap_admin_password: str = ''
    upload_dir: str = './uploads'
    upload_max_bytes: int = 5 * 1024 * 1024
    vote_duration_days: int = 7
    points_per_badge: int = 10
    report_list_limit: int = 20
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()
