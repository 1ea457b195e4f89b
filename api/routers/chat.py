"""
Chat API Endpoints.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_session
from api.models import ChannelCreate, ChannelResponse, MessageCreate, MessageResponse
from domain.errors import NotFoundError
from services.session import Session

router = APIRouter()


@router.get("/chat/channels", response_model=list[ChannelResponse], summary="List Channels")
def list_channels(session: Session = Depends(get_session)):
    return [ChannelResponse.from_domain(channel) for channel in session.chat.channels]


@router.post("/chat/channels", response_model=ChannelResponse, status_code=201, summary="Create Channel")
def create_channel(payload: ChannelCreate, session: Session = Depends(get_session)):
    channel = session.chat.create_channel(payload.name, session.actor.name)
    return ChannelResponse.from_domain(channel)


@router.get(
    "/chat/channels/{channel_id}/messages",
    response_model=list[MessageResponse],
    summary="List Messages",
    description="Messages of one channel, oldest first.",
)
def list_messages(channel_id: str, session: Session = Depends(get_session)):
    if channel_id not in {channel.channel_id for channel in session.chat.channels}:
        raise NotFoundError(f"Unknown chat channel '{channel_id}'")
    return [MessageResponse.from_domain(message) for message in session.chat.messages_for(channel_id)]


@router.post(
    "/chat/channels/{channel_id}/messages",
    response_model=MessageResponse,
    status_code=201,
    summary="Post Message",
)
def post_message(channel_id: str, payload: MessageCreate, session: Session = Depends(get_session)):
    message = session.chat.post_message(channel_id, session.actor.name, payload.text)
    return MessageResponse.from_domain(message)
