"""notiq - 내구성 있는 알림 잡 큐와 TTL 응답 캐시"""

__version__ = "1.0.0"
