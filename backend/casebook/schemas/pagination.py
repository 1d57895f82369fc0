from pydantic import BaseModel


class PageMetaRead(BaseModel):
    total: int
    per_page: int
    current_page: int
    last_page: int
