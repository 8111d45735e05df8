"""
core - 权限框架层

独立于具体业务领域，app 层基于它实现菜单/角色授权：
- security: 权限标识、默认权限推导、会话上下文、守卫判定、条件渲染

使用方式:
    >>> from core.security import default_deriver, check_access
"""
