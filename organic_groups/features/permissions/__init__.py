"""
Permission management feature module.

Per group bundle roles (non-member, member, administrator and custom roles)
and the catalog of group and group content permissions they grant.
"""
