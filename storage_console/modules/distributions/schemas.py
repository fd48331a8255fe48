from pydantic import BaseModel
from typing import Optional, List


class LinkedBucket(BaseModel):
    id: str
    name: str
    s3_bucket_name: str
    status: str


class DistributionResponse(BaseModel):
    id: str
    domain_name: str
    status: str
    enabled: bool
    origins: List[str] = []
    comment: str = ""
    last_modified: str = ""
    alternative_domains: List[str] = []
    price_class: str = "PriceClass_All"
    linked_bucket: Optional[LinkedBucket] = None
