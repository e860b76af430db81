from app.models.cache.data_cache import DataCache
from app.models.sync.sync_log import SyncLog
from app.models.system.system_setting import SystemSetting
