import logging
from typing import Protocol

import attrs

from energypredict.errors import DuplicateFieldError, ProfileNotLoaded, TransportError
from energypredict.forms import DEFAULT_USER_TYPE, ProfileForm, require_valid

_LOGGER = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Profile updated successfully!!"


class ProfileService(Protocol):
    async def find_user(self, username: str) -> dict:
        ...

    async def find_existing(self, email: str, phone_no: str) -> dict:
        """Map of field name -> existing user record holding that value."""
        ...

    async def modify_user(self, user_id: str, changes: dict) -> dict:
        ...


@attrs.frozen
class UserProfile:
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_no: str = ""
    password: str = ""
    user_type: str = DEFAULT_USER_TYPE
    notification: bool = False

    @classmethod
    def from_record(cls, record: dict) -> 'UserProfile':
        """Build from the user service's wire form (camelCase keys, '_id')."""
        if not isinstance(record, dict) or '_id' not in record:
            raise TransportError("User record is missing '_id'")
        return cls(
            id=record['_id'],
            first_name=record.get('firstName', ""),
            last_name=record.get('lastName', ""),
            email=record.get('email', ""),
            phone_no=record.get('phoneNo', ""),
            password=record.get('password', ""),
            user_type=record.get('userType', DEFAULT_USER_TYPE),
            notification=bool(record.get('notification', False)),
        )


def form_from_profile(profile: UserProfile | None) -> ProfileForm:
    if profile is None:
        return ProfileForm()
    return ProfileForm(
        first_name=profile.first_name,
        last_name=profile.last_name,
        email=profile.email,
        phone_no=profile.phone_no,
        password=profile.password,
        user_type=profile.user_type,
        notification=profile.notification,
    )


def find_conflicts(existing: dict, user_id: str) -> dict[str, str]:
    """
    A field conflicts when the record already holding its value belongs to a
    different user. Records owned by user_id are the user's own and are ignored.
    """
    conflicts = {}
    for field_name, record in (existing or {}).items():
        if not isinstance(record, dict):
            continue
        if record.get('_id') != user_id:
            conflicts[field_name] = f"This {field_name} already exists!"
    return conflicts


class ProfileEditor:
    """Loads a user's profile and saves edits after validation and a duplicate check."""

    def __init__(self, service: ProfileService, username: str):
        self.service = service
        self.username = username
        self.profile: UserProfile | None = None

    async def load(self) -> UserProfile:
        record = await self.service.find_user(self.username)
        self.profile = UserProfile.from_record(record)
        _LOGGER.debug("Loaded profile %s for %s", self.profile.id, self.username)
        return self.profile

    def initial_form(self) -> ProfileForm:
        return form_from_profile(self.profile)

    async def save(self, form: ProfileForm) -> UserProfile:
        """
        Validate, check email/phone against other users, then apply the changes.

        Raises:
            ProfileNotLoaded: load() has not succeeded yet
            ValidationError: a field fails its rule
            DuplicateFieldError: email or phone belongs to another user
            TransportError: any service call failed
        """
        if self.profile is None:
            raise ProfileNotLoaded()
        require_valid(form)

        existing = await self.service.find_existing(form.email, form.phone_no)
        conflicts = find_conflicts(existing, self.profile.id)
        if conflicts:
            _LOGGER.info("Profile update for %s rejected: %s", self.username, sorted(conflicts))
            raise DuplicateFieldError(conflicts)

        updated = await self.service.modify_user(self.profile.id, form.to_changes())
        self.profile = UserProfile.from_record(updated)
        _LOGGER.info("Profile %s updated", self.profile.id)
        return self.profile
