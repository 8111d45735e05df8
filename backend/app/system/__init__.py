"""系统管理域：菜单、角色、用户与权限"""
