import asyncio
from datetime import UTC, datetime, timedelta
import os
import time
from typing import Any

import httpx
import jwt

from tfdeploy.logging import get_logger
from tfdeploy.models import CheckRunRequest, CheckRunResponse, DiffDirection, Repo

logger = get_logger(__name__)

# Refresh installation tokens this long before GitHub expires them.
TOKEN_EXPIRY_BUFFER = timedelta(seconds=60)
MAX_RATE_LIMIT_RETRIES = 3


class GitHubAppClient:
    """Client for authenticated GitHub App interactions."""

    def __init__(
        self,
        app_id: str | None = None,
        private_key_path: str | None = None,
        api_url: str = "https://api.github.com",
    ):
        self.app_id = app_id or os.getenv("GITHUB_APP_ID")
        self.private_key_path = private_key_path or os.getenv(
            "GITHUB_APP_PRIVATE_KEY_PATH", "/app/keys/github_app.pem"
        )
        self.api_url = api_url.rstrip("/")
        self._private_key: str | None = None
        self._token_cache: dict[int, tuple[str, datetime]] = {}

        if not self.app_id:
            logger.warning("github_app_id_missing", env_var="TFDEPLOY_GITHUB_APP_ID")

    def _load_private_key(self) -> str:
        if self._private_key:
            return self._private_key

        if not os.path.exists(self.private_key_path):
            if os.getenv("GITHUB_PRIVATE_KEY_CONTENT"):
                self._private_key = os.getenv("GITHUB_PRIVATE_KEY_CONTENT")
                return self._private_key

            raise FileNotFoundError(f"GitHub App private key not found at {self.private_key_path}")

        with open(self.private_key_path) as f:
            self._private_key = f.read()
        return self._private_key

    def _generate_jwt(self) -> str:
        """Generate JWT for GitHub App authentication."""
        pem = self._load_private_key()
        now = int(time.time())
        payload = {"iat": now - 60, "exp": now + (10 * 60), "iss": self.app_id}
        return jwt.encode(payload, pem, algorithm="RS256")

    async def _make_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, sleeping until the reset time when rate limited."""
        async with httpx.AsyncClient() as client:
            for attempt in range(MAX_RATE_LIMIT_RETRIES + 1):
                resp = await client.request(method, url, **kwargs)
                if not self._is_rate_limited(resp) or attempt == MAX_RATE_LIMIT_RETRIES:
                    return resp

                reset_at = int(resp.headers.get("x-ratelimit-reset", "0"))
                delay = max(reset_at - int(time.time()), 1)
                logger.warning("github_rate_limited", url=url, retry_in_seconds=delay, attempt=attempt + 1)
                await asyncio.sleep(delay)
        return resp

    @staticmethod
    def _is_rate_limited(resp: httpx.Response) -> bool:
        return (
            resp.status_code in (httpx.codes.FORBIDDEN, httpx.codes.TOO_MANY_REQUESTS)
            and resp.headers.get("x-ratelimit-remaining") == "0"
        )

    async def _get_installation_token(self, installation_id: int) -> str:
        """Return a cached installation token, minting a new one when close to expiry."""
        cached = self._token_cache.get(installation_id)
        if cached and cached[1] - TOKEN_EXPIRY_BUFFER > datetime.now(UTC):
            return cached[0]

        headers = {
            "Authorization": f"Bearer {self._generate_jwt()}",
            "Accept": "application/vnd.github+json",
        }
        resp = await self._make_request(
            "POST", f"{self.api_url}/app/installations/{installation_id}/access_tokens", headers=headers
        )
        resp.raise_for_status()
        data = resp.json()
        expires_at = datetime.strptime(data["expires_at"], "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)
        self._token_cache[installation_id] = (data["token"], expires_at)
        logger.debug("github_installation_token_refreshed", installation_id=installation_id)
        return data["token"]

    async def _headers(self, installation_id: int) -> dict[str, str]:
        token = await self._get_installation_token(installation_id)
        return {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github+json",
        }

    @staticmethod
    def _check_run_body(request: CheckRunRequest) -> dict[str, Any]:
        status, conclusion = request.state.status_and_conclusion()
        body: dict[str, Any] = {
            "name": request.title,
            "status": status,
            "external_id": request.external_id,
            "output": {"title": request.title, "text": request.title, "summary": request.summary},
        }
        if conclusion:
            body["conclusion"] = conclusion
        if request.actions:
            body["actions"] = [a.model_dump() for a in request.actions]
        return body

    async def create_check_run(self, request: CheckRunRequest) -> CheckRunResponse:
        repo = request.repo
        body = self._check_run_body(request)
        body["head_sha"] = request.sha
        resp = await self._make_request(
            "POST",
            f"{self.api_url}/repos/{repo.owner}/{repo.name}/check-runs",
            headers=await self._headers(repo.installation_token),
            json=body,
        )
        resp.raise_for_status()
        data = resp.json()
        logger.info("check_run_created", repo=repo.full_name, check_run_id=data["id"], title=request.title)
        return CheckRunResponse(id=data["id"], status=data["status"])

    async def update_check_run(self, check_run_id: int, request: CheckRunRequest) -> CheckRunResponse:
        repo = request.repo
        resp = await self._make_request(
            "PATCH",
            f"{self.api_url}/repos/{repo.owner}/{repo.name}/check-runs/{check_run_id}",
            headers=await self._headers(repo.installation_token),
            json=self._check_run_body(request),
        )
        resp.raise_for_status()
        data = resp.json()
        return CheckRunResponse(id=data["id"], status=data["status"])

    async def compare_commits(self, repo: Repo, base: str, head: str) -> DiffDirection:
        """Direction of ``head`` relative to ``base``."""
        resp = await self._make_request(
            "GET",
            f"{self.api_url}/repos/{repo.owner}/{repo.name}/compare/{base}...{head}",
            headers=await self._headers(repo.installation_token),
        )
        resp.raise_for_status()
        return DiffDirection(resp.json()["status"])

    async def list_team_members(self, installation_id: int, org: str, team_slug: str) -> list[str]:
        """List logins of all members of a team, following pagination."""
        headers = await self._headers(installation_id)
        members: list[str] = []
        page = 1
        per_page = 100

        while True:
            resp = await self._make_request(
                "GET",
                f"{self.api_url}/orgs/{org}/teams/{team_slug}/members",
                params={"per_page": per_page, "page": page},
                headers=headers,
            )
            resp.raise_for_status()
            batch = resp.json()
            members.extend(m["login"] for m in batch)
            if len(batch) < per_page:
                break
            page += 1

        return members
