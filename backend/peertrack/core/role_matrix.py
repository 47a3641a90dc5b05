from __future__ import annotations

from typing import Any, Optional

from peertrack.models.user import UserRole, normalize_role

# 中文注释：
# - 这里集中定义“角色 -> 动作”权限矩阵，避免权限逻辑散落在各路由。
# - 需要看资源本身的动作（例如 review:submit 需要在指派名单里）在 _RESOURCE_RULES 里补充判断。

ROLE_ACTIONS: dict[UserRole, set[str]] = {
    UserRole.AUTHOR: {
        "manuscript:submit",
        "manuscript:list_own",
        "manuscript:view",
        "stats:author",
    },
    UserRole.REVIEWER: {
        "manuscript:view",
        "manuscript:list_assigned",
        "review:submit",
        "stats:reviewer",
    },
    UserRole.EDITOR: {
        "manuscript:view",
        "manuscript:list_all",
        "manuscript:assign_reviewers",
        "manuscript:set_status",
        "manuscript:decide",
        "manuscript:list_reviews",
        "user:list_reviewers",
    },
    UserRole.ADMIN: {
        "manuscript:view",
        "manuscript:list_all",
        "manuscript:assign_reviewers",
        "manuscript:set_status",
        "manuscript:decide",
        "manuscript:list_reviews",
        "user:list_reviewers",
        "user:list",
        "user:stats",
        "notification:create",
    },
}


def _actor_id(actor: Any) -> str:
    if isinstance(actor, dict):
        return str(actor.get("id") or "")
    return str(getattr(actor, "id", "") or "")


def _actor_role(actor: Any) -> Optional[UserRole]:
    raw = actor.get("role") if isinstance(actor, dict) else getattr(actor, "role", None)
    return normalize_role(raw)


def _assigned_to(actor: Any, resource: Any) -> bool:
    if resource is None:
        # 中文注释: 路由层先做角色判断，稿件加载后 service 再带上 resource 复核
        return True
    assigned = (
        resource.get("assigned_reviewers") if isinstance(resource, dict) else getattr(resource, "assigned_reviewers", None)
    )
    return _actor_id(actor) in {str(r) for r in (assigned or [])}


_RESOURCE_RULES = {
    "review:submit": _assigned_to,
}


def can_perform(actor: Any, action: str, resource: Any = None) -> bool:
    """
    判定 actor 是否可以对 resource 执行 action（纯函数，不访问存储）。

    actor 可以是 User 或 dict（需含 id/role）；resource 可选，用于归属类判断。
    """
    if actor is None:
        return False
    role = _actor_role(actor)
    if role is None or action not in ROLE_ACTIONS.get(role, set()):
        return False
    rule = _RESOURCE_RULES.get(action)
    if rule is not None and not rule(actor, resource):
        return False
    return True


def list_allowed_actions(actor: Any) -> set[str]:
    """
    返回当前角色可执行动作集合（用于前端 capability 输出）。
    """
    role = _actor_role(actor)
    if role is None:
        return set()
    return set(ROLE_ACTIONS.get(role, set()))
