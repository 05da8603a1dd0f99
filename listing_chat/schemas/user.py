from fastapi_users import schemas


class UserRead(schemas.BaseUser):
    username: str
    # Set for dealership staff; managed by the marketplace, not by users
    dealership_id: int | None = None


class UserCreate(schemas.BaseUserCreate):
    username: str


class UserUpdate(schemas.BaseUserUpdate):
    username: str | None = None
