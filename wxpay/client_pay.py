# ============================================================================
# WxPay Gateway Client v1.0.0
# Client-Side Payment Helpers - Signed Launch Parameters
# ============================================================================
#
# Purpose: Signs the objects a front end needs to confirm a prepaid order
#
#   jsapi_pay: in-app (JSAPI / mini program) payment, JSON string
#   app_pay:   native app SDK payment, field map
#   notify_reply: acknowledgement body returned to a gateway notification
#
# No transport step; only the signer, nonce generator and codec are used.
#
# ============================================================================

import json
import time
from typing import Dict, Optional

from wxpay.codec import EnvelopeCodec
from wxpay.config import WxPayCredential
from wxpay.models import SUCCESS
from wxpay.nonce import DEFAULT_NONCE_LENGTH, NonceGenerator
from wxpay.signer import CanonicalSigner

JSAPI_SIGN_TYPE = "MD5"
APP_PACKAGE = "Sign=WXPay"

_signer = CanonicalSigner()
_nonce = NonceGenerator()
_codec = EnvelopeCodec()


def _timestamp(now: Optional[int]) -> str:
    return str(int(time.time()) if now is None else now)


def jsapi_pay_params(
    credential: WxPayCredential,
    prepay_id: str,
    now: Optional[int] = None
) -> Dict[str, str]:
    """
    Signed field map for JSAPI payment confirmation.

    Args:
        credential: Merchant credential
        prepay_id: prepay_id returned by unified order
        now: Unix timestamp override (seconds)

    Returns:
        appId, timeStamp, nonceStr, package, signType and paySign
    """
    params = {
        "appId": credential.app_id,
        "timeStamp": _timestamp(now),
        "nonceStr": _nonce.generate(DEFAULT_NONCE_LENGTH),
        "package": f"prepay_id={prepay_id}",
        "signType": JSAPI_SIGN_TYPE,
    }
    params["paySign"] = _signer.sign(params, credential.app_key)
    return params


def jsapi_pay(
    credential: WxPayCredential,
    prepay_id: str,
    now: Optional[int] = None
) -> str:
    """JSAPI payment object serialized as JSON for the front end."""
    return json.dumps(jsapi_pay_params(credential, prepay_id, now))


def app_pay(
    credential: WxPayCredential,
    prepay_id: str,
    now: Optional[int] = None
) -> Dict[str, str]:
    """
    Signed field map for app SDK payment confirmation.

    Returns:
        appid, partnerid, prepayid, package, noncestr, timestamp and sign
    """
    params = {
        "appid": credential.app_id,
        "partnerid": credential.mch_id,
        "prepayid": prepay_id,
        "package": APP_PACKAGE,
        "noncestr": _nonce.generate(DEFAULT_NONCE_LENGTH),
        "timestamp": _timestamp(now),
    }
    params["sign"] = _signer.sign(params, credential.app_key)
    return params


def notify_reply(return_code: str = SUCCESS, return_msg: str = "OK") -> bytes:
    """
    Acknowledgement envelope returned to the gateway's notification POST.

    Anything other than SUCCESS makes the gateway redeliver later.
    """
    return _codec.encode({"return_code": return_code, "return_msg": return_msg})


__all__ = [
    "JSAPI_SIGN_TYPE",
    "APP_PACKAGE",
    "jsapi_pay_params",
    "jsapi_pay",
    "app_pay",
    "notify_reply",
]
