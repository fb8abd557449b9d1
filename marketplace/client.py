# marketplace/client.py
# 市集的資料 client：7 個實體各有一個 delegate (client.user, client.project ...)
from pathlib import Path
from typing import Union

from marketplace.core.database import Base

# --- 匯入所有 Model 檔案 ---
# 匯入順序 = 資料表註冊順序 = 產生型別時的順序
from marketplace.models.user import User, UserRole  # noqa: F401
from marketplace.models.service import PricingType, Service  # noqa: F401
from marketplace.models.project import Project, ProjectStatus  # noqa: F401
from marketplace.models.proposal import Proposal, ProposalStatus  # noqa: F401
from marketplace.models.contract import Contract, ContractStatus  # noqa: F401
from marketplace.models.milestone import Milestone, MilestoneStatus  # noqa: F401
from marketplace.models.review import Review  # noqa: F401

from marketplace.orm.client import Client
from marketplace.orm.codegen import write_types
from marketplace.orm.delegate import ModelDelegate
from marketplace.orm.schema import build_schema

schema = build_schema(Base)

ModelName = schema.model_name_enum()
UserScalarFieldEnum = schema["User"].scalar_field_enum()
ServiceScalarFieldEnum = schema["Service"].scalar_field_enum()
ProjectScalarFieldEnum = schema["Project"].scalar_field_enum()
ProposalScalarFieldEnum = schema["Proposal"].scalar_field_enum()
ContractScalarFieldEnum = schema["Contract"].scalar_field_enum()
MilestoneScalarFieldEnum = schema["Milestone"].scalar_field_enum()
ReviewScalarFieldEnum = schema["Review"].scalar_field_enum()

TYPES_PATH = Path(__file__).with_name("client_types.py")


class MarketplaceClient(Client):
    user: ModelDelegate
    service: ModelDelegate
    project: ModelDelegate
    proposal: ModelDelegate
    contract: ModelDelegate
    milestone: ModelDelegate
    review: ModelDelegate

    def __init__(self, database_url: str = None, **kwargs):
        super().__init__(schema, database_url, **kwargs)


def generate_types(path: Union[str, Path] = TYPES_PATH) -> Path:
    """重新產生 client 的 typing stub (Model 有異動時執行)"""
    return write_types(schema, path)
