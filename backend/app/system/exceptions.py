"""
系统管理业务异常

路由层约定：NotFoundError -> 404，其余 ValueError 子类 -> 400。
"""


class NotFoundError(LookupError):
    """菜单 / 角色 / 用户 / 授权不存在"""

    def __init__(self, entity: str, key):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} 不存在")


class BusinessRuleError(ValueError):
    """违反业务规则（重复标识、修改超级管理员角色等）"""


class MenuCycleError(BusinessRuleError):
    """移动菜单会形成环"""

    def __init__(self, menu_id: int, parent_id: int):
        self.menu_id = menu_id
        self.parent_id = parent_id
        super().__init__(f"不能将菜单 {menu_id} 的父级设为自身或其子级 {parent_id}")
