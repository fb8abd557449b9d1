from marketplace.client import ModelName, ProposalScalarFieldEnum, schema
from marketplace.models.user import UserRole
from marketplace.orm.schema import DATETIME, ENUM, FLOAT, JSON_KIND


def test_all_models_registered_in_declaration_order():
    assert [model.name for model in schema] == [
        "User", "Service", "Project", "Proposal", "Contract", "Milestone", "Review",
    ]
    assert [member.value for member in ModelName] == [model.name for model in schema]


def test_user_fields():
    user = schema["User"]
    assert user.id_field.name == "id"
    assert user.get_field("email").is_unique
    assert user.get_field("role").kind == ENUM
    assert user.get_field("role").enum_class is UserRole
    assert user.get_field("skills").kind == JSON_KIND
    assert user.get_field("hourly_rate").kind == FLOAT
    assert user.get_field("hourly_rate").nullable
    assert user.get_field("created_at").kind == DATETIME
    assert user.delegate_name == "user"


def test_required_on_create():
    user = schema["User"]
    required = {field.name for field in user.fields if field.is_required_on_create}
    assert required == {"name", "email", "password"}


def test_relations():
    user = schema["User"]
    projects = user.get_relation("projects")
    assert projects.is_list
    assert projects.target == "Project"
    assert projects.pairs == (("id", "client_id"),)

    proposal = schema["Proposal"]
    project = proposal.get_relation("project")
    assert not project.is_list
    assert project.required
    assert project.local_field == "project_id"
    assert project.remote_field == "id"


def test_compound_unique_selectors():
    assert schema["Proposal"].compound_selectors() == {
        "project_id_freelancer_id": ("project_id", "freelancer_id"),
    }
    assert schema["Review"].compound_selectors() == {
        "contract_id_reviewer_id": ("contract_id", "reviewer_id"),
    }
    assert ("email",) in schema["User"].unique_selectors


def test_scalar_field_enum():
    assert [member.value for member in ProposalScalarFieldEnum] == schema["Proposal"].field_names
    assert ProposalScalarFieldEnum.status == "status"
