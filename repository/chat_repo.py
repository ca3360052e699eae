from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from shared.db import Chat, ChatParticipant, Message, User


def chat_to_dict(chat: Chat, participant_ids: Iterable[int]) -> dict:
    return {
        "id": chat.id,
        "companyId": chat.company_id,
        "createdBy": chat.created_by,
        "participantIds": sorted(participant_ids),
        "createdAt": chat.created_at.isoformat() if chat.created_at else None,
    }


def message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "chatId": message.chat_id,
        "senderId": message.sender_id,
        "content": message.content,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


def missing_tenant_users(db: Session, company_id: int, user_ids: Iterable[int]) -> List[int]:
    """Return the ids that do not belong to an active user in the company."""
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return []
    found = {
        row.id
        for row in db.query(User.id)
        .filter(User.id.in_(wanted), User.company_id == company_id, User.is_active.is_(True))
        .all()
    }
    return [user_id for user_id in wanted if user_id not in found]


def create_chat(db: Session, *, company_id: int, created_by: int, participant_ids: Iterable[int]) -> Chat:
    chat = Chat(company_id=company_id, created_by=created_by)
    db.add(chat)
    db.flush()
    for user_id in dict.fromkeys(participant_ids):
        db.add(ChatParticipant(chat_id=chat.id, user_id=user_id))
    db.flush()
    return chat


def get_tenant_chat(db: Session, company_id: int, chat_id: int) -> Optional[Chat]:
    return db.query(Chat).filter(Chat.id == chat_id, Chat.company_id == company_id).one_or_none()


def is_participant(db: Session, chat_id: int, user_id: int) -> bool:
    return (
        db.query(ChatParticipant.id)
        .filter(ChatParticipant.chat_id == chat_id, ChatParticipant.user_id == user_id)
        .first()
        is not None
    )


def participants_by_chat(db: Session, chat_ids: List[int]) -> Dict[int, List[int]]:
    grouped: Dict[int, List[int]] = {chat_id: [] for chat_id in chat_ids}
    if not chat_ids:
        return grouped
    rows = db.query(ChatParticipant).filter(ChatParticipant.chat_id.in_(chat_ids)).all()
    for row in rows:
        grouped.setdefault(row.chat_id, []).append(row.user_id)
    return grouped


def list_user_chats(db: Session, company_id: int, user_id: int) -> List[Chat]:
    return (
        db.query(Chat)
        .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
        .filter(Chat.company_id == company_id, ChatParticipant.user_id == user_id)
        .order_by(Chat.created_at.desc(), Chat.id.desc())
        .all()
    )


def list_messages(db: Session, company_id: int, chat_id: int, *, after_id: Optional[int] = None, limit: int = 200) -> List[Message]:
    query = db.query(Message).filter(Message.chat_id == chat_id, Message.company_id == company_id)
    if after_id is not None:
        query = query.filter(Message.id > after_id)
    return query.order_by(Message.id.asc()).limit(limit).all()


def add_message(db: Session, *, company_id: int, chat_id: int, sender_id: int, content: str) -> Message:
    message = Message(company_id=company_id, chat_id=chat_id, sender_id=sender_id, content=content)
    db.add(message)
    db.flush()
    return message
