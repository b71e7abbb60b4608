import re

from marshmallow import Schema, fields, pre_load, validates, ValidationError, validate

# one upper, one lower, one digit, one special, no whitespace, 8+ chars
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[^\s]{8,}$")


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class UserCreateSchema(Schema):
    first_name = fields.String(required=True, validate=validate.Length(min=1, max=260))
    last_name = fields.String(required=True, validate=validate.Length(min=1, max=260))
    username = fields.String(required=True, validate=validate.Length(min=1, max=64))
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    bio = fields.String(allow_none=True, validate=validate.Length(max=1000))
    current_city = fields.String(allow_none=True, validate=validate.Length(max=260))
    hometown = fields.String(allow_none=True, validate=validate.Length(max=260))

    @pre_load
    def normalize(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "email" in data:
            data["email"] = _norm_email(data["email"])
        for key in ("first_name", "last_name", "username"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip()
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < 8:
            raise ValidationError("Password is required and must be minimum of 8 characters.")
        if not PASSWORD_RE.match(value):
            raise ValidationError(
                "Stronger password is required. The password must have one uppercase, one lowercase, "
                "one number and one special character and no spaces."
            )


class UserLoginSchema(Schema):
    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=1), load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    first_name = fields.String()
    last_name = fields.String()
    full_name = fields.String()
    username = fields.String()
    email = fields.String()
    bio = fields.String(allow_none=True)
    current_city = fields.String(allow_none=True)
    hometown = fields.String(allow_none=True)
