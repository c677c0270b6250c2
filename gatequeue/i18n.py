"""
Message catalogue for API responses.

Two locales are shipped, en-US and zh-CN. Lookups fall back to en-US and
finally to the key itself, so a missing translation never fails a request.
"""

from __future__ import annotations

DEFAULT_LOCALE = "en-US"

CATALOGUE: dict[str, dict[str, str]] = {
    "en-US": {
        "queue.created": "Queue {queue} created",
        "queue.removed": "Queue {queue} removed",
        "queue.cleared": "Removed {count} jobs from queue {queue}",
        "queue.started": "Queue {queue} started with processor {processor}",
        "queue.stopped": "Queue {queue} stopped",
        "queue.not_found": "Queue {queue} not found",
        "queue.stats": "Queue statistics",
        "queue.all_started": "Started {count} queues",
        "queue.all_stopped": "All queues stopped",
        "job.added": "Job added",
        "job.batch_added": "{count} jobs added",
        "job.removed": "Job removed",
        "job.not_found": "Job {job_id} not found",
        "permission.checked": "Permission checked",
        "permission.policy_added": "Policy added",
        "permission.policy_exists": "Policy already exists",
        "permission.policy_removed": "Policy removed",
        "permission.policies_added": "{count} policies added",
        "permission.role_assigned": "Role {role} assigned to {user}",
        "permission.role_removed": "Role {role} removed from {user}",
        "permission.cache_cleared": "Permission cache cleared",
        "error.validation": "Request validation failed",
        "error.unauthenticated": "Authentication required",
        "error.forbidden": "Access denied",
        "error.not_found": "Resource not found",
        "error.conflict": "Resource state conflict",
        "error.unavailable": "Service temporarily unavailable",
        "error.internal": "Internal server error",
    },
    "zh-CN": {
        "queue.created": "队列 {queue} 已创建",
        "queue.removed": "队列 {queue} 已删除",
        "queue.cleared": "已从队列 {queue} 清除 {count} 个任务",
        "queue.started": "队列 {queue} 已使用处理器 {processor} 启动",
        "queue.stopped": "队列 {queue} 已停止",
        "queue.not_found": "队列 {queue} 不存在",
        "queue.stats": "队列统计信息",
        "queue.all_started": "已启动 {count} 个队列",
        "queue.all_stopped": "所有队列已停止",
        "job.added": "任务已添加",
        "job.batch_added": "已添加 {count} 个任务",
        "job.removed": "任务已删除",
        "job.not_found": "任务 {job_id} 不存在",
        "permission.checked": "权限检查完成",
        "permission.policy_added": "策略已添加",
        "permission.policy_exists": "策略已存在",
        "permission.policy_removed": "策略已删除",
        "permission.policies_added": "已添加 {count} 条策略",
        "permission.role_assigned": "已为 {user} 分配角色 {role}",
        "permission.role_removed": "已移除 {user} 的角色 {role}",
        "permission.cache_cleared": "权限缓存已清除",
        "error.validation": "请求参数验证失败",
        "error.unauthenticated": "需要登录认证",
        "error.forbidden": "权限不足",
        "error.not_found": "资源不存在",
        "error.conflict": "资源状态冲突",
        "error.unavailable": "服务暂时不可用",
        "error.internal": "服务器内部错误",
    },
}

_ALIASES = {"en": "en-US", "zh": "zh-CN"}


def resolve_locale(value: str | None, default: str = DEFAULT_LOCALE) -> str:
    """
    Pick a supported locale from a tag or an Accept-Language header.

    "zh-CN,zh;q=0.9,en;q=0.8" → "zh-CN"; unknown tags → `default`.
    """
    if not value:
        return default
    for part in value.split(","):
        tag = part.split(";")[0].strip()
        if tag in CATALOGUE:
            return tag
        primary = tag.split("-")[0].lower()
        if primary in _ALIASES:
            return _ALIASES[primary]
    return default


def translate(key: str, locale: str | None = None, **params: object) -> str:
    messages = CATALOGUE.get(resolve_locale(locale), CATALOGUE[DEFAULT_LOCALE])
    template = messages.get(key) or CATALOGUE[DEFAULT_LOCALE].get(key) or key
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
