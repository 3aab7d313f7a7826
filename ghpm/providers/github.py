"""GitHub backend: GraphQL API for projects and relationships, REST v3 for issue bodies and files."""

import subprocess

import httpx
import structlog

from ghpm.errors import RemoteAPIError
from ghpm.models import FieldColor, FieldOption, Issue, ProjectField, TransferredIssue
from ghpm.providers.base import ProjectBackend
from ghpm.settings import GhpmSettings

BASE_URL = "https://api.github.com"
GRAPHQL_URL = f"{BASE_URL}/graphql"

logger = structlog.get_logger()

_ISSUE_FIELDS = "id number url title body repository { name owner { login } }"

_REPOSITORY_ID = """
query RepositoryId($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { id }
}
"""

_ISSUE_ID = """
query IssueId($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) { issue(number: $number) { id } }
}
"""

_ORG_PROJECT_ID = """
query OrgProjectId($owner: String!, $number: Int!) {
  organization(login: $owner) { projectV2(number: $number) { id } }
}
"""

_USER_PROJECT_ID = """
query UserProjectId($owner: String!, $number: Int!) {
  user(login: $owner) { projectV2(number: $number) { id } }
}
"""

_CREATE_ISSUE = f"""
mutation CreateIssue($repositoryId: ID!, $title: String!, $body: String) {{
  createIssue(input: {{ repositoryId: $repositoryId, title: $title, body: $body }}) {{
    issue {{ {_ISSUE_FIELDS} }}
  }}
}}
"""

_ADD_TO_PROJECT = """
mutation AddToProject($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: { projectId: $projectId, contentId: $contentId }) { item { id } }
}
"""

_PROJECT_ITEMS = """
query ProjectItems($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: 100) { nodes { id content { ... on Issue { id } } } }
    }
  }
}
"""

_PROJECT_FIELDS = """
query ProjectFields($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 100) {
        nodes {
          ... on ProjectV2FieldCommon { id name }
          ... on ProjectV2SingleSelectField { id name options { id name color } }
        }
      }
    }
  }
}
"""

_FIELD_SELECTION = "projectV2Field { ... on ProjectV2SingleSelectField { id name options { id name color } } }"

_CREATE_FIELD = f"""
mutation CreateField($projectId: ID!, $name: String!, $options: [ProjectV2SingleSelectFieldOptionInput!]) {{
  createProjectV2Field(input: {{
    projectId: $projectId, name: $name, dataType: SINGLE_SELECT, singleSelectOptions: $options
  }}) {{ {_FIELD_SELECTION} }}
}}
"""

_UPDATE_FIELD = f"""
mutation UpdateField($fieldId: ID!, $options: [ProjectV2SingleSelectFieldOptionInput!]) {{
  updateProjectV2Field(input: {{ fieldId: $fieldId, singleSelectOptions: $options }}) {{ {_FIELD_SELECTION} }}
}}
"""

_UPDATE_ITEM_VALUE = """
mutation UpdateItemValue($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: { singleSelectOptionId: $optionId }
  }) { projectV2Item { id } }
}
"""

_ADD_BLOCKED_BY = """
mutation AddBlockedBy($issueId: ID!, $blockingIssueId: ID!) {
  addBlockedBy(input: { issueId: $issueId, blockingIssueId: $blockingIssueId }) { issue { id } }
}
"""

_ADD_SUB_ISSUE = """
mutation AddSubIssue($issueId: ID!, $subIssueId: ID!) {
  addSubIssue(input: { issueId: $issueId, subIssueId: $subIssueId }) { issue { id } }
}
"""

_REMOVE_SUB_ISSUE = """
mutation RemoveSubIssue($issueId: ID!, $subIssueId: ID!) {
  removeSubIssue(input: { issueId: $issueId, subIssueId: $subIssueId }) { issue { id } }
}
"""

_TRANSFER_ISSUE = """
mutation TransferIssue($issueId: ID!, $repositoryId: ID!) {
  transferIssue(input: { issueId: $issueId, repositoryId: $repositoryId }) {
    issue { number url repository { name owner { login } } }
  }
}
"""


def _option_input(option: FieldOption) -> dict:
    return {"name": option.name, "color": str(option.color or FieldColor.GRAY), "description": ""}


def _field_from_node(node: dict) -> ProjectField:
    options = [
        FieldOption(id=o["id"], name=o["name"], color=o.get("color") or None) for o in node.get("options") or []
    ]
    return ProjectField(id=node["id"], name=node["name"], options=options)


def _issue_from_node(node: dict) -> Issue:
    repository = node["repository"]
    return Issue(
        id=node["id"],
        number=node["number"],
        url=node["url"],
        title=node["title"],
        body=node.get("body") or "",
        owner=repository["owner"]["login"],
        repo=repository["name"],
    )


class GitHubProvider(ProjectBackend):
    def __init__(self, settings: GhpmSettings) -> None:
        self._token = self._resolve_token(settings)
        self.supports_sub_issues = settings.sub_issues
        self._headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "GraphQL-Features": "sub_issues,issue_types",
        }

    def _resolve_token(self, settings: GhpmSettings) -> str:
        if settings.github_auth == "gh-cli":
            result = subprocess.run(
                ["gh", "auth", "token"],
                capture_output=True,
                text=True,
            )
            if result.returncode != 0:
                raise RuntimeError("gh auth token failed. Run: gh auth login")
            return result.stdout.strip()
        if settings.github_token:
            return settings.github_token.get_secret_value()
        raise RuntimeError("No GitHub credentials. Set github_token or github_auth = \"gh-cli\"")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _check(self, operation: str, response: httpx.Response) -> None:
        if response.status_code == 401:
            raise RemoteAPIError(operation, "GitHub API returned 401. Update github_token for the active context.")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteAPIError(operation, exc) from exc

    def _graphql(self, operation: str, query: str, variables: dict | None = None) -> dict:
        try:
            response = httpx.post(
                GRAPHQL_URL,
                headers=self._headers,
                json={"query": query, "variables": variables or {}},
                timeout=30,
            )
        except httpx.HTTPError as exc:
            raise RemoteAPIError(operation, exc) from exc
        self._check(operation, response)
        data = response.json()
        if data.get("errors"):
            messages = "; ".join(e.get("message", str(e)) for e in data["errors"])
            raise RemoteAPIError(operation, messages)
        logger.debug("graphql_call", operation=operation)
        return data["data"]

    def _request(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", self._headers)
        try:
            response = httpx.request(method, f"{BASE_URL}{path}", headers=headers, timeout=30, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteAPIError(operation, exc) from exc
        return response

    # ------------------------------------------------------------------
    # Identity resolution
    # ------------------------------------------------------------------

    def resolve_repository_id(self, owner: str, repo: str) -> str:
        data = self._graphql("resolve-repository-id", _REPOSITORY_ID, {"owner": owner, "name": repo})
        repository = data.get("repository")
        if not repository or not repository.get("id"):
            raise RemoteAPIError("resolve-repository-id", f"repository {owner}/{repo} not found")
        return repository["id"]

    def resolve_issue_id(self, owner: str, repo: str, number: int) -> str:
        data = self._graphql("resolve-issue-id", _ISSUE_ID, {"owner": owner, "name": repo, "number": number})
        issue = (data.get("repository") or {}).get("issue")
        if not issue or not issue.get("id"):
            raise RemoteAPIError("resolve-issue-id", f"issue #{number} not found in {owner}/{repo}")
        return issue["id"]

    def resolve_project_id(self, owner: str, number: int, owner_type: str) -> str:
        query, root = (_USER_PROJECT_ID, "user") if owner_type == "user" else (_ORG_PROJECT_ID, "organization")
        data = self._graphql("resolve-project-id", query, {"owner": owner, "number": number})
        project = (data.get(root) or {}).get("projectV2")
        if not project or not project.get("id"):
            raise RemoteAPIError("resolve-project-id", f"project #{number} not found for {owner}")
        return project["id"]

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def get_issue(self, owner: str, repo: str, number: int) -> Issue:
        response = self._request("get-issue", "GET", f"/repos/{owner}/{repo}/issues/{number}")
        self._check("get-issue", response)
        node = response.json()
        return Issue(
            id=node["node_id"],
            number=node["number"],
            url=node["html_url"],
            title=node["title"],
            body=node.get("body") or "",
            owner=owner,
            repo=repo,
        )

    def create_issue(self, repository_id: str, title: str, body: str) -> Issue:
        data = self._graphql(
            "create-issue", _CREATE_ISSUE, {"repositoryId": repository_id, "title": title, "body": body}
        )
        node = (data.get("createIssue") or {}).get("issue")
        if not node or not node.get("url"):
            raise RemoteAPIError("create-issue", "issue created but response missing URL")
        return _issue_from_node(node)

    def update_issue_body(self, owner: str, repo: str, number: int, body: str) -> None:
        response = self._request("patch-issue-body", "PATCH", f"/repos/{owner}/{repo}/issues/{number}", json={"body": body})
        self._check("patch-issue-body", response)

    def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None:
        response = self._request(
            "add-labels", "POST", f"/repos/{owner}/{repo}/issues/{number}/labels", json={"labels": labels}
        )
        self._check("add-labels", response)

    def transfer_issue(self, issue_id: str, repository_id: str) -> TransferredIssue:
        data = self._graphql("transfer-issue", _TRANSFER_ISSUE, {"issueId": issue_id, "repositoryId": repository_id})
        node = (data.get("transferIssue") or {}).get("issue")
        if not node:
            raise RemoteAPIError("transfer-issue", "transfer response missing issue")
        return TransferredIssue(
            number=node["number"],
            url=node["url"],
            owner=node["repository"]["owner"]["login"],
            repo=node["repository"]["name"],
        )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def add_issue_to_project(self, project_id: str, issue_id: str) -> str:
        data = self._graphql("add-issue-to-project", _ADD_TO_PROJECT, {"projectId": project_id, "contentId": issue_id})
        item = (data.get("addProjectV2ItemById") or {}).get("item")
        if not item:
            raise RemoteAPIError("add-issue-to-project", "response missing project item")
        return item["id"]

    def find_project_item_id(self, project_id: str, issue_id: str) -> str:
        # NOTE: scans the first 100 items only. Pagination not implemented.
        data = self._graphql("find-project-item", _PROJECT_ITEMS, {"projectId": project_id})
        nodes = ((data.get("node") or {}).get("items") or {}).get("nodes") or []
        for node in nodes:
            if (node.get("content") or {}).get("id") == issue_id:
                return node["id"]
        raise RemoteAPIError("find-project-item", "issue not found in project")

    def list_project_fields(self, project_id: str) -> list[ProjectField]:
        data = self._graphql("list-project-fields", _PROJECT_FIELDS, {"projectId": project_id})
        nodes = ((data.get("node") or {}).get("fields") or {}).get("nodes") or []
        # Field types outside the fragments come back as empty objects
        return [_field_from_node(n) for n in nodes if n.get("id") and n.get("name")]

    def create_single_select_field(self, project_id: str, name: str, options: list[FieldOption]) -> ProjectField:
        data = self._graphql(
            "create-single-select-field",
            _CREATE_FIELD,
            {"projectId": project_id, "name": name, "options": [_option_input(o) for o in options]},
        )
        node = (data.get("createProjectV2Field") or {}).get("projectV2Field")
        if not node:
            raise RemoteAPIError("create-single-select-field", "response missing field")
        return _field_from_node(node)

    def update_field_options(self, field_id: str, options: list[FieldOption]) -> None:
        self._graphql(
            "update-field-options",
            _UPDATE_FIELD,
            {"fieldId": field_id, "options": [_option_input(o) for o in options]},
        )

    def update_item_field_value(self, project_id: str, item_id: str, field_id: str, option_id: str) -> None:
        self._graphql(
            "update-item-field-value",
            _UPDATE_ITEM_VALUE,
            {"projectId": project_id, "itemId": item_id, "fieldId": field_id, "optionId": option_id},
        )

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def add_blocked_by(self, issue_id: str, blocking_issue_id: str) -> None:
        self._graphql("add-blocked-by", _ADD_BLOCKED_BY, {"issueId": issue_id, "blockingIssueId": blocking_issue_id})

    def add_sub_issue(self, issue_id: str, sub_issue_id: str) -> None:
        self._graphql("add-sub-issue", _ADD_SUB_ISSUE, {"issueId": issue_id, "subIssueId": sub_issue_id})

    def remove_sub_issue(self, issue_id: str, sub_issue_id: str) -> None:
        self._graphql("remove-sub-issue", _REMOVE_SUB_ISSUE, {"issueId": issue_id, "subIssueId": sub_issue_id})

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def fetch_template(self, owner: str, repo: str, path: str) -> str | None:
        response = self._request(
            "fetch-template",
            "GET",
            f"/repos/{owner}/{repo}/contents/{path}",
            headers={**self._headers, "Accept": "application/vnd.github.raw+json"},
        )
        if response.status_code == 404:
            return None
        self._check("fetch-template", response)
        return response.text
