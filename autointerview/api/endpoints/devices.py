"""
Device API endpoints

Lists capture devices for the setup screen's device picker.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from autointerview.core.capture import list_input_devices

router = APIRouter()


class DeviceInfo(BaseModel):
    """A capture device."""
    index: int
    name: str
    channels: int
    default_sample_rate: float


@router.get("")
async def get_devices() -> list[DeviceInfo]:
    """Get all available input devices."""
    return [DeviceInfo(**device) for device in list_input_devices()]
