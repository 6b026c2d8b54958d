from __future__ import annotations

AHMED = ("Ahmed Al Saud Faisal", "0501234567", "E100")
SARA = ("Sara Noor Hassan", "0551112222", "E200")
