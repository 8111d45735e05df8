"""
集中定义所有权限码常量

与菜单种子数据中的按钮 perms 保持一致。
"""

# 菜单管理
MENU_LIST = "system:menu:list"
MENU_QUERY = "system:menu:query"
MENU_ADD = "system:menu:add"
MENU_EDIT = "system:menu:edit"
MENU_REMOVE = "system:menu:remove"
MENU_REPAIR = "system:menu:repair"

# 角色管理
ROLE_LIST = "system:role:list"
ROLE_QUERY = "system:role:query"
ROLE_ADD = "system:role:add"
ROLE_EDIT = "system:role:edit"
ROLE_REMOVE = "system:role:remove"
ROLE_ASSIGN = "system:role:assign"

# 用户管理
USER_LIST = "system:user:list"
USER_QUERY = "system:user:query"
USER_ASSIGN = "system:user:assign"
