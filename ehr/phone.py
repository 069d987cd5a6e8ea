"""
日本电话号码规范化。

幂等：normalize_jp_phone(normalize_jp_phone(x)) == normalize_jp_phone(x)
"""

import re
import unicodedata

_NON_DIGIT_RE = re.compile(r"\D")


def normalize_jp_phone(tel: str | None) -> str:
    """
    统一成「0 开头、只含数字」的国内格式。

      "090-1234-5678"   → "09012345678"
      "０９０１２３４５６７８" → "09012345678"   （全角）
      "+81 90 1234 5678" → "09012345678"
      "0090-1234-5678"  → "09012345678"
      "9012345678"      → "09012345678"   （表格软件吃掉了开头的 0）
    """
    digits = _NON_DIGIT_RE.sub("", unicodedata.normalize("NFKC", tel or ""))
    if not digits:
        return ""

    if digits.startswith("81") and len(digits) in (11, 12):
        return "0" + digits[2:]
    if digits.startswith("00"):
        return "0" + digits.lstrip("0")
    if not digits.startswith("0"):
        return "0" + digits
    return digits
