from .events import EventFacetsRes, EventRes, EventsListQuery, EventsListRes
from .notes import NoteCreateReq, NoteRes, NotesListRes, NoteUpdateReq

__all__ = [
    "EventFacetsRes",
    "EventRes",
    "EventsListQuery",
    "EventsListRes",
    "NoteCreateReq",
    "NoteRes",
    "NoteUpdateReq",
    "NotesListRes",
]
