"""
Form records for the prediction request and the profile editor.

Each record is immutable. A field change produces a new record through
with_field() (attrs.evolve), and validate() returns a mapping of wire field
name to error message, empty when the record is valid.
"""
import re
from datetime import datetime

import attrs

from energypredict.errors import ValidationError

NAME_RE = re.compile(r'^[A-Za-z]+$')
EMAIL_RE = re.compile(r'^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$')
PHONE_RE = re.compile(r'^[0-9]{10}$')
PASSWORD_RE = re.compile(r'^(?=.*[A-Za-z])(?=.*\d)(?=.*[@$!%*#?&])[A-Za-z\d@$!%*#?&]{8,}$')
PASSWORD_MESSAGE = "Must Contain 8 Characters, One Alphabet, One Number and one special case Character"

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 32

USER_TYPES = ('Owner', 'Finance Team', 'Maintenance Team')
DEFAULT_USER_TYPE = 'Owner'

_DATE_FORMAT = '%Y-%m-%d'


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


class _FormRecord:
    # python attribute name -> wire field name
    WIRE_NAMES: dict[str, str] = {}

    def with_field(self, name: str, value):
        """Return a copy with one field replaced. Accepts the attribute or the wire name."""
        wire_to_attr = {v: k for k, v in self.WIRE_NAMES.items()}
        attr_name = wire_to_attr.get(name, name)
        if attr_name not in self.WIRE_NAMES:
            raise KeyError(f"Unknown field: {name}")
        return attrs.evolve(self, **{attr_name: value})

    def is_valid(self) -> bool:
        return not self.validate()

    def validate(self) -> dict[str, str]:
        raise NotImplementedError


def require_valid(record: _FormRecord) -> None:
    errors = record.validate()
    if errors:
        raise ValidationError(errors)


@attrs.frozen
class PredictionRequest(_FormRecord):
    """Date/time range for an energy prediction, as typed into the form."""
    from_date: str = ""
    from_time: str = ""
    to_date: str = ""
    to_time: str = ""
    username: str = ""

    WIRE_NAMES = {
        'from_date': 'fromDate',
        'from_time': 'fromTime',
        'to_date': 'toDate',
        'to_time': 'toTime',
        'username': 'username',
    }

    @staticmethod
    def _check_date(value: str, required_message: str) -> str | None:
        if _blank(value):
            return required_message
        try:
            datetime.strptime(value, _DATE_FORMAT)
        except ValueError:
            return required_message
        return None

    def validate(self) -> dict[str, str]:
        errors = {}
        checks = {
            'fromDate': self._check_date(self.from_date, "Please Enter the Start Date"),
            'fromTime': "Please Enter the Start Time" if _blank(self.from_time) else None,
            'toDate': self._check_date(self.to_date, "Please Enter the End Date"),
            'toTime': "Please Enter the End Time" if _blank(self.to_time) else None,
        }
        for field_name, message in checks.items():
            if message is not None:
                errors[field_name] = message
        return errors

    def to_payload(self) -> dict:
        return {wire: getattr(self, attr_name) for attr_name, wire in self.WIRE_NAMES.items()}


def _check_name(value: str, label: str) -> str | None:
    if _blank(value):
        return f"Please Enter your {label}"
    if not NAME_RE.match(value):
        return f"Please Enter a valid {label}"
    if len(value) < NAME_MIN_LENGTH:
        return "Too Short!"
    if len(value) > NAME_MAX_LENGTH:
        return "Too Long!"
    return None


@attrs.frozen
class ProfileForm(_FormRecord):
    """Editable user profile fields."""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_no: str = ""
    password: str = ""
    user_type: str = DEFAULT_USER_TYPE
    notification: bool = False

    WIRE_NAMES = {
        'first_name': 'firstName',
        'last_name': 'lastName',
        'email': 'email',
        'phone_no': 'phoneNo',
        'password': 'password',
        'user_type': 'userType',
        'notification': 'notification',
    }

    def validate(self) -> dict[str, str]:
        errors = {}

        message = _check_name(self.first_name, "First Name")
        if message:
            errors['firstName'] = message
        message = _check_name(self.last_name, "Last Name")
        if message:
            errors['lastName'] = message

        if _blank(self.email):
            errors['email'] = "Please Enter your Email"
        elif not EMAIL_RE.match(self.email):
            errors['email'] = "Please Enter a valid Email"

        if _blank(self.phone_no):
            errors['phoneNo'] = "Please Enter your Phone No."
        elif not PHONE_RE.match(self.phone_no):
            errors['phoneNo'] = "Please Enter a 10 digit Phone Number"

        if _blank(self.password):
            errors['password'] = "Please Enter your password"
        elif not PASSWORD_RE.match(self.password):
            errors['password'] = PASSWORD_MESSAGE

        if _blank(self.user_type):
            errors['userType'] = "Please Select the User type"

        if not isinstance(self.notification, bool):
            errors['notification'] = "notification must be true or false"

        return errors

    def to_changes(self) -> dict:
        """Wire-form changeset for the modify endpoint."""
        return {wire: getattr(self, attr_name) for attr_name, wire in self.WIRE_NAMES.items()}
