"""잡 type별 핸들러 모듈 (worker.base.load_handlers가 재귀 로드)"""
