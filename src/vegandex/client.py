import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import requests
from loguru import logger

from .exceptions import (
    VegandexAPIError,
    VegandexAuthenticationError,
    VegandexConnectionError,
    VegandexTimeoutError,
    VegandexValidationError,
)

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_TIMEOUT = 10.0


class VegandexClient:
    """
    A client for the Vegandex product discovery API.

    Holds no session state apart from an optional bearer token, which is
    attached to every request as ``Authorization: Bearer <token>``. Session
    lifecycle (persistence, rehydration, logout) lives in
    :class:`vegandex.auth.SessionManager`.

    Args:
        api_url: Base URL of the API, including the ``/api`` prefix
        request_timeout: Timeout for each request in seconds

    Example:
        >>> client = VegandexClient(api_url="http://localhost:5000/api")
        >>> result = client.login("alice@example.com", "secret")
        >>> client.set_auth_token(result["token"])
        >>> client.search_products(country="Germany")
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        request_timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.auth_token = auth_token
        self.request_timeout = request_timeout

    def set_auth_token(self, auth_token: Optional[str]) -> None:
        """Set (or clear, with None) the bearer token used for requests."""
        self.auth_token = auth_token

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = token or self.auth_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            VegandexTimeoutError: If the request times out
            VegandexConnectionError: If no response reached the client
            VegandexAuthenticationError: If the server answers 401
            VegandexAPIError: For any other non-2xx answer
            VegandexValidationError: If a 2xx answer is not JSON
        """
        url = f"{self.base_url}{path}"

        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(token),
                timeout=self.request_timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout:
            logger.error("Request timeout: {} {}", method, url)
            raise VegandexTimeoutError("Request timed out. Please try again.")
        except requests.exceptions.ConnectionError:
            logger.error("Network error: {} {}", method, url)
            raise VegandexConnectionError("Network error. Please check your connection.")
        except requests.exceptions.RequestException as e:
            raise VegandexConnectionError(f"Request to {url} failed: {str(e)}")

        if not response.ok:
            server_message = self._server_message(response)
            logger.debug("{} {} -> {} {}", method, url, response.status_code, server_message)
            if response.status_code == 401:
                raise VegandexAuthenticationError(
                    server_message or "Authentication failed. Please check your credentials.",
                    status_code=401,
                    server_message=server_message,
                )
            raise VegandexAPIError(
                server_message or f"API Error: {response.status_code} {response.reason}",
                status_code=response.status_code,
                server_message=server_message,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError):
            raise VegandexValidationError(f"Invalid response from {url}: body is not JSON")

    @staticmethod
    def _server_message(response: requests.Response) -> Optional[str]:
        try:
            error_data = response.json()
        except (json.JSONDecodeError, ValueError):
            return None
        if isinstance(error_data, dict) and error_data.get("message"):
            return str(error_data["message"])
        return None

    @staticmethod
    def _expect_object(result: Any, what: str) -> Dict[str, Any]:
        if not isinstance(result, dict):
            raise VegandexValidationError(f"Invalid response: {what} is not an object")
        return result

    # Auth endpoints

    def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in; the response carries ``token`` plus the user's basic fields."""
        result = self._request("POST", "/auth/login", json={"email": email, "password": password})
        return self._expect_object(result, "login response")

    def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        """Create an account; the response carries ``token`` and possibly ``user``."""
        payload = {"email": email, "password": password, "username": username}
        result = self._request("POST", "/auth/register", json=payload)
        return self._expect_object(result, "register response")

    def fetch_profile(self, token: Optional[str] = None) -> Dict[str, Any]:
        """Fetch the canonical profile of the user owning ``token``."""
        result = self._request("GET", "/auth/profile", token=token)
        return self._expect_object(result, "profile")

    def logout(self, token: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/auth/logout", token=token)

    # Product endpoints

    def search_products(
        self,
        country: Optional[str] = None,
        search: Optional[str] = None,
        added_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Search products by region, free text or uploader."""
        params = {}
        if country:
            params["location"] = country
        if search:
            params["search"] = search
        if added_by:
            params["addedBy"] = added_by

        result = self._request("GET", "/products", params=params)
        # Paginated responses wrap the list in ``data``.
        if isinstance(result, dict):
            result = result.get("data", [])
        if not isinstance(result, list):
            raise VegandexValidationError("Invalid response: product list is not a list")
        return result

    def get_product(self, product_id: str) -> Dict[str, Any]:
        result = self._request("GET", f"/products/{product_id}")
        return self._expect_object(result, "product")

    def add_product(
        self,
        name: str,
        category: str,
        country: str,
        description: str,
        ingredients: str = "",
        image_paths: Iterable[str] = (),
    ) -> Dict[str, Any]:
        """
        Create a product as a multipart form, uploading each image under ``images``.

        Returns:
            Dict[str, Any]: The created product, including its ``_id``
        """
        data = {
            "name": name,
            "category": category,
            "country": country,
            "description": description,
            "ingredients": ingredients,
        }

        handles = []
        try:
            files = []
            for image_path in image_paths:
                path = Path(image_path)
                try:
                    handle = open(path, "rb")
                except OSError as e:
                    raise VegandexValidationError(f"Could not read image {path}: {e}")
                handles.append(handle)
                files.append(("images", (path.name, handle, _guess_image_type(path))))
            result = self._request("POST", "/products", data=data, files=files or None)
        finally:
            for handle in handles:
                handle.close()

        product = self._expect_object(result, "product")
        # Some deployments wrap the created document in ``data``.
        if "_id" not in product and isinstance(product.get("data"), dict):
            product = product["data"]
        return product

    def delete_product(self, product_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/products/{product_id}")

    def add_comment(self, product_id: str, text: str, rating: int) -> Dict[str, Any]:
        """Post a comment with a 1-5 rating and return the server's answer."""
        if not 1 <= int(rating) <= 5:
            raise ValueError("rating must be between 1 and 5")
        return self._request(
            "POST",
            f"/products/{product_id}/comments",
            json={"text": text, "rating": int(rating)},
        )

    def delete_comment(self, product_id: str, comment_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/products/{product_id}/comments/{comment_id}")

    def report_comment(self, product_id: str, comment_id: str, reason: str) -> Dict[str, Any]:
        return self._request(
            "PUT",
            f"/products/{product_id}/comments/{comment_id}/report",
            json={"reason": reason},
        )

    def health_check(self) -> Dict[str, Any]:
        """
        Check if the vegandex server is healthy and reachable.
        """
        try:
            result = self._request("GET", "/health")
        except VegandexConnectionError:
            return {
                "status": "error",
                "error": "connection_error",
                "message": f"Could not connect to vegandex server at {self.base_url}",
            }
        except VegandexTimeoutError:
            return {
                "status": "error",
                "error": "timeout",
                "message": "Health check request timed out",
            }
        except (VegandexAPIError, VegandexValidationError) as e:
            return {
                "status": "error",
                "error": "request_error",
                "message": f"Health check failed: {str(e)}",
            }
        if isinstance(result, dict) and "status" in result:
            return result
        return {"status": "healthy"}

    def is_healthy(self) -> bool:
        """
        Simple boolean check if server is healthy.
        """
        return self.health_check().get("status") in ("healthy", "ok")


def _guess_image_type(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".png":
        return "image/png"
    if suffix == ".gif":
        return "image/gif"
    if suffix == ".webp":
        return "image/webp"
    return "image/jpeg"
