from pydantic import ValidationError
import pytest

from tfdeploy.policy import BranchRestriction, GlobalPolicy, RepoPolicy, TemplateKey, load_policy

POLICY_YAML = """
organization: lyft
repos:
  - id: /.*/
    branch_restriction: default_branch
  - id: github.com/lyft/infra
    team: infra-deployers
    templates:
      user_forbidden: "{user} is not in {org}/{team}"
  - id: /lyft\\/sandbox.*/
    branch_restriction: none
"""


@pytest.fixture
def policy(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text(POLICY_YAML)
    return load_policy(path)


def test_loads_organization_and_repos(policy):
    assert policy.organization == "lyft"
    assert len(policy.repos) == 3


def test_exact_id_and_regex_matches_fold(policy):
    match = policy.matching_repo("github.com/lyft/infra")

    assert match.branch_restriction == BranchRestriction.DEFAULT_BRANCH
    assert match.team == "infra-deployers"
    assert match.templates[TemplateKey.USER_FORBIDDEN] == "{user} is not in {org}/{team}"


def test_last_match_wins(policy):
    match = policy.matching_repo("github.com/lyft/sandbox-1")

    assert match.branch_restriction == BranchRestriction.NONE
    assert match.team == ""


def test_unmatched_repo_gets_defaults():
    match = GlobalPolicy().matching_repo("github.com/a/b")

    assert match.branch_restriction == BranchRestriction.NONE
    assert match.team == ""


def test_missing_file_setting_yields_empty_policy():
    assert load_policy(None) == GlobalPolicy()


def test_invalid_regex_rejected():
    with pytest.raises(ValidationError):
        RepoPolicy(id="/[/")
