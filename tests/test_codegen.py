from sqlalchemy import Column, String
from sqlalchemy.orm import declarative_base

from marketplace.client import generate_types, schema
from marketplace.orm.codegen import render_types
from marketplace.orm.schema import build_schema


def load(source):
    namespace = {}
    exec(compile(source, "client_types.py", "exec"), namespace)
    return namespace


def test_output_is_deterministic():
    assert render_types(schema) == render_types(schema)


def test_generated_module_executes():
    types = load(render_types(schema))
    for name in ("UserRole", "ProjectStatus", "UserDelegate", "ReviewDelegate", "ClientProtocol",
                 "TransactionClientProtocol", "SortOrderInput", "StringFilter"):
        assert name in types


def test_create_input_required_keys():
    types = load(render_types(schema))
    assert types["UserCreateInput"].__required_keys__ == frozenset({"name", "email", "password"})
    assert types["ProposalCreateInput"].__required_keys__ == frozenset(
        {"cover_letter", "proposed_price", "estimated_duration", "project", "freelancer"}
    )
    assert types["ProposalUncheckedCreateInput"].__required_keys__ == frozenset(
        {"project_id", "freelancer_id", "cover_letter", "proposed_price", "estimated_duration"}
    )
    # 一對多的巢狀寫入不包含指回父表的外鍵
    nested = types["MilestoneCreateManyWithoutContractInput"]
    assert "contract_id" not in nested.__annotations__
    assert "order_index" in nested.__required_keys__


def test_where_unique_variants():
    source = render_types(schema)
    assert "ProposalWhereUniqueInputByProjectIdFreelancerId" in source
    assert "ProposalProjectIdFreelancerIdCompoundUniqueInput" in source
    types = load(source)
    by_email = types["UserWhereUniqueInputByEmail"]
    assert "email" in by_email.__required_keys__
    assert "id" not in by_email.__required_keys__


def test_numeric_buckets_only_for_numeric_fields():
    types = load(render_types(schema))
    assert set(types["ServiceAvgAggregateInput"].__annotations__) == {
        "price", "delivery_days", "rating", "total_reviews",
    }
    assert "skills" not in types["UserMinAggregateInput"].__annotations__


def test_model_without_numeric_fields_has_no_avg_or_sum():
    Base = declarative_base()

    class Tag(Base):
        __tablename__ = "tags"
        id = Column(String(36), primary_key=True)
        label = Column(String(50), nullable=False)

    source = render_types(build_schema(Base))
    assert "TagAvgAggregateInput" not in source
    assert "TagSumAggregateInput" not in source
    types = load(source)
    assert set(types["TagAggregateResult"].__annotations__) == {"_count", "_min", "_max"}


def test_generate_types_writes_file(tmp_path):
    path = generate_types(tmp_path / "client_types.py")
    assert path.read_text(encoding="utf-8") == render_types(schema)
