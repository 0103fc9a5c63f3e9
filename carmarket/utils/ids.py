import uuid


def generate_id() -> str:
    """UUID4 문자열 ID 생성"""
    return str(uuid.uuid4())
