"""Audit log entries written by the backend for every mutating action."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LogAction(str, Enum):
    LOGIN = "登入"
    REGISTER = "註冊申請"
    APPROVE_USER = "核准用戶"
    CREATE_TASK = "新增工項"
    UPDATE_STATUS = "變更狀態"
    DELETE_TASK = "刪除項目"
    UPLOAD_FILE = "上傳檔案"
    RESET_PASSWORD = "重設密碼請求"
    CHANGE_PASSWORD = "修改密碼"
    ADD_MEETING = "新增會議紀錄"
    ADD_CONTACT = "新增通訊錄"
    UPDATE_TEMPLATE = "更新檢核範本"
    SUBMIT_CHECKLIST = "提交場館檢核"


@dataclass(frozen=True)
class AuditLog:
    id: str
    timestamp: str
    user_email: str
    # Kept as the raw backend label; older rows use actions not in LogAction
    action: str
    details: str = ""
    task_uid: str | None = None

    @property
    def action_kind(self) -> LogAction | None:
        try:
            return LogAction(self.action)
        except ValueError:
            return None

    def to_dict(self) -> dict:
        kind = self.action_kind
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "user_email": self.user_email,
            "action": self.action,
            "action_kind": kind.name if kind is not None else None,
            "details": self.details,
            "task_uid": self.task_uid,
        }
