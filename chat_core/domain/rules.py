"""消息准入规则。

decide_admission 是一个纯函数：只根据候选消息角色、最后一条消息角色、
是否已有 system 消息以及内容是否为空，决定 Conversation 应执行的动作。
"""

from enum import Enum
from typing import Optional

from chat_core.domain.exceptions import AdjacentRoleViolation
from chat_core.domain.models import Role


class Admission(str, Enum):
    APPEND = "append"
    INSERT_SYSTEM = "insert_system"
    REPLACE_SYSTEM = "replace_system"
    DROP_SYSTEM = "drop_system"
    NOOP = "noop"


def decide_admission(
    role: Role,
    last_role: Optional[Role],
    has_system: bool,
    has_content: bool,
) -> Admission:
    """返回候选消息的准入动作。

    Raises:
        AdjacentRoleViolation: user/assistant 消息与最后一条消息角色相同。
    """

    if role == "system":
        if has_content:
            return Admission.REPLACE_SYSTEM if has_system else Admission.INSERT_SYSTEM
        return Admission.DROP_SYSTEM if has_system else Admission.NOOP
    if last_role == role:
        raise AdjacentRoleViolation(role)
    return Admission.APPEND
