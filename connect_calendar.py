from dotenv import load_dotenv
load_dotenv()

from calconnect.config import load_config
from calconnect.services.calendar import CalendarService

cfg = load_config()
with CalendarService(cfg.provider, cfg.credentials, cfg.database_url,
                     refresh_interval=cfg.refresh_interval) as calendar:
    print(f"Open this URL to connect your {cfg.provider} calendar:")
    print(calendar.connect())
