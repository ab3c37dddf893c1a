"""
HTTP client for the MicroLend REST API.

Every failed call raises the platform exception matching the error envelope
the server returned, so callers branch on ``kind`` (or the exception class)
exactly as the server classified the failure. Network failures raise
``TransportError``.
"""

import logging
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from apps.common.exceptions import TransportError, error_from_response

logger = logging.getLogger('microlend_client')

DEFAULT_BASE_URL = 'http://localhost:8000/api'
DEFAULT_TIMEOUT = 10


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    return value


class LendingAPIClient:
    """Token-authenticated session scoped to one signed-in identity."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.base_url = (base_url or os.environ.get('MICROLEND_API_URL', DEFAULT_BASE_URL)).rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.user: Optional[Dict[str, Any]] = None
        self.token = None
        if token:
            self.set_token(token)

    def set_token(self, token: str) -> None:
        self.token = token
        self.session.headers['Authorization'] = f'Token {token}'

    def _request(self, method: str, path: str, params=None, payload=None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        body = None
        if payload is not None:
            body = {key: _jsonable(value) for key, value in payload.items()}

        try:
            response = self.session.request(method, url, params=params, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise TransportError(f"Could not reach the lending service: {exc}") from exc

        if response.status_code >= 400:
            try:
                data = response.json()
            except ValueError:
                data = {}
            error = error_from_response(response.status_code, data)
            logger.info(
                f"{method} {url} returned {response.status_code} ({error.kind})",
                extra={'status_code': response.status_code, 'error_code': error.error_code}
            )
            raise error

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Identity

    def login(self, username: str, password: str) -> Dict[str, Any]:
        data = self._request('POST', '/users/login/', payload={'username': username, 'password': password})
        self.set_token(data['token'])
        self.user = data['user']
        return data

    @property
    def user_id(self) -> Optional[int]:
        return self.user['id'] if self.user else None

    @property
    def role(self) -> Optional[str]:
        return self.user['role'] if self.user else None

    # Loans

    def create_loan(self, amount, purpose: str, term_months: int, description: str = '') -> Dict[str, Any]:
        return self._request('POST', '/loans/', payload={
            'amount': amount, 'purpose': purpose, 'term_months': term_months, 'description': description,
        })

    def get_open_loans(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/loans/')

    def get_user_loans(self, user_id: int) -> List[Dict[str, Any]]:
        return self._request('GET', f'/loans/user/{user_id}/')

    def get_loan(self, loan_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/loans/{loan_id}/')

    def update_loan_status(self, loan_id: int, status: str) -> Dict[str, Any]:
        return self._request('PATCH', f'/loans/{loan_id}/', payload={'status': status})

    def fund_loan(self, loan_id: int) -> Dict[str, Any]:
        return self._request('POST', f'/loans/{loan_id}/fund/')

    # Offers

    def submit_offer(self, loan_id: int, amount, interest_rate, message: str = '') -> Dict[str, Any]:
        return self._request('POST', '/offers/', payload={
            'loan_id': loan_id, 'amount': amount, 'interest_rate': interest_rate, 'message': message,
        })

    def get_loan_offers(self, loan_id: int) -> List[Dict[str, Any]]:
        return self._request('GET', f'/offers/loan/{loan_id}/')

    def get_my_offers(self, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {'userId': user_id} if user_id is not None else None
        return self._request('GET', '/offers/my-offers/', params=params)

    def get_donor_offers(self, donor_id: int) -> List[Dict[str, Any]]:
        return self._request('GET', f'/offers/donor/{donor_id}/')

    def accept_offer(self, offer_id: int) -> Dict[str, Any]:
        return self._request('POST', f'/offers/{offer_id}/accept/')

    def reject_offer(self, offer_id: int) -> Dict[str, Any]:
        return self._request('POST', f'/offers/{offer_id}/reject/')

    # Crowdfunding

    def get_fundraisers(self, email: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._request('GET', '/fundraise/', params={'email': email} if email else None)

    def create_fundraiser(self, **fields) -> Dict[str, Any]:
        return self._request('POST', '/fundraise/', payload=fields)

    def donate(self, fundraiser_id: int, amount) -> Dict[str, Any]:
        return self._request('POST', f'/fundraise/{fundraiser_id}/donate/', payload={'amount': amount})

    def close(self) -> None:
        self.session.close()
