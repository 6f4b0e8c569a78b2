# freightbridge/services/notification_queue.py
import redis
from rq import Queue

from freightbridge.core.config import settings

redis_conn = redis.from_url(settings.REDIS_URL)
notification_queue = Queue("notifications", connection=redis_conn)
