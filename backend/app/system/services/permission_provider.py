"""
RBACPermissionProvider - IPermissionProvider 的 app 层实现

通过 PermissionService 查询数据库，带内存缓存。
授权或用户角色变更提交后，路由层调用 invalidate_user / invalidate_all。
数据库查询在锁外执行；查询期间发生失效时，结果只返回给调用方，不写入缓存。
"""
from typing import Callable, Dict, List, Set, Tuple
import logging
import threading

from core.security.permission import IPermissionProvider, grants
from app.system.services.rbac_service import PermissionService

logger = logging.getLogger(__name__)


class RBACPermissionProvider(IPermissionProvider):
    """基于数据库的 RBAC 权限提供者"""

    def __init__(self, db_session_factory):
        """
        Args:
            db_session_factory: callable that returns a new DB session
        """
        self._db_session_factory = db_session_factory
        self._lock = threading.Lock()
        self._permission_cache: Dict[int, Set[str]] = {}
        self._role_cache: Dict[int, List[str]] = {}
        self._superuser_cache: Dict[int, bool] = {}
        # 失效计数：invalidate_user 递增单个用户，invalidate_all 递增全局
        self._user_generations: Dict[int, int] = {}
        self._global_generation = 0

    def _generation(self, user_id: int) -> Tuple[int, int]:
        # 调用方需持有 self._lock
        return self._global_generation, self._user_generations.get(user_id, 0)

    def _cached(self, cache: Dict, user_id: int, load: Callable[[PermissionService], object]):
        with self._lock:
            if user_id in cache:
                return cache[user_id]
            generation = self._generation(user_id)

        db = self._db_session_factory()
        try:
            value = load(PermissionService(db))
        finally:
            db.close()

        with self._lock:
            if self._generation(user_id) == generation:
                cache[user_id] = value
            else:
                logger.debug(f"Cache invalidated while loading user {user_id}, result not cached")
        return value

    def has_permission(self, user_id: int, permission_code: str) -> bool:
        if self.is_superuser(user_id):
            return True
        return grants(self.get_user_permissions(user_id), permission_code)

    def get_user_permissions(self, user_id: int) -> Set[str]:
        return self._cached(self._permission_cache, user_id, lambda svc: svc.get_user_permissions(user_id))

    def get_user_roles(self, user_id: int) -> List[str]:
        return self._cached(self._role_cache, user_id, lambda svc: svc.get_user_role_keys(user_id))

    def is_superuser(self, user_id: int) -> bool:
        return self._cached(self._superuser_cache, user_id, lambda svc: svc.is_superuser(user_id))

    def invalidate_user(self, user_id: int) -> None:
        """Invalidate cache for a specific user (call after role/permission change)"""
        with self._lock:
            self._user_generations[user_id] = self._user_generations.get(user_id, 0) + 1
            self._permission_cache.pop(user_id, None)
            self._role_cache.pop(user_id, None)
            self._superuser_cache.pop(user_id, None)
        logger.debug(f"Permission cache invalidated for user {user_id}")

    def invalidate_all(self) -> None:
        """Invalidate all caches (call after bulk role/permission changes)"""
        with self._lock:
            self._global_generation += 1
            self._user_generations.clear()
            self._permission_cache.clear()
            self._role_cache.clear()
            self._superuser_cache.clear()
        logger.debug("Permission cache invalidated for all users")
