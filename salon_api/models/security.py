# salon_api/models/security.py
from salon_api.extensions import db


class Role(db.Model):
    __tablename__ = "roles"
    id   = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)  # e.g., "admin", "supervisor"

    users = db.relationship(
        "UserRole",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    permissions = db.relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Role id={self.id} code={self.code!r}>"


class UserRole(db.Model):
    __tablename__ = "user_roles"
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role_id = db.Column(
        db.Integer,
        db.ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )

    role = db.relationship("Role", back_populates="users")
    user = db.relationship(
        "User",
        backref=db.backref(
            "user_roles",
            cascade="all, delete-orphan",
            passive_deletes=True,
        ),
    )


class Permission(db.Model):
    __tablename__ = "permissions"
    id   = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(120), unique=True, nullable=False)  # e.g., "bonus.approve"
    name = db.Column(db.String(150), nullable=True)

    roles = db.relationship(
        "RolePermission",
        back_populates="permission",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Permission id={self.id} code={self.code!r}>"


class RolePermission(db.Model):
    __tablename__ = "role_permissions"
    # composite PK keeps (role_id, permission_id) unique without extra index
    role_id = db.Column(
        db.Integer,
        db.ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    permission_id = db.Column(
        db.Integer,
        db.ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )

    role = db.relationship("Role", back_populates="permissions")
    permission = db.relationship("Permission", back_populates="roles")


# Permission codes used by the bonus endpoints, grouped by the role that gets them on seed.
BONUS_PERMISSIONS = {
    "bonus.read": "View weekly bonuses",
    "bonus.sync": "Compute / re-sync weekly bonuses",
    "bonus.request": "Request bonus payout",
    "bonus.approve": "Approve, reject and pay bonuses",
    "bonus.audit.read": "View bonus audit log",
}

ROLE_DEFAULT_PERMS = {
    "supervisor": ("bonus.read", "bonus.request"),
    "accountant": ("bonus.read", "bonus.sync", "bonus.approve", "bonus.audit.read"),
}
