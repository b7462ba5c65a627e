import httpx
from typing import Optional, Dict, Any
from autopublish.config import settings

INFERENCE_URL = "https://api-inference.huggingface.co/models/{model}"

class HFClient:
    def __init__(self, api_token: Optional[str] = None, timeout: float = 120.0):
        self.api_token = api_token or settings.hf_api_token
        if not self.api_token:
            raise RuntimeError("HF_API_TOKEN is not set. Put it in .env or set it in the environment.")
        self.headers = {"Authorization": f"Bearer {self.api_token}"}
        self.client = httpx.Client(timeout=timeout)

    def _post(self, model: str, payload: Dict[str, Any], accept: Optional[str] = None) -> httpx.Response:
        headers = dict(self.headers)
        if accept:
            headers["Accept"] = accept
        r = self.client.post(INFERENCE_URL.format(model=model), headers=headers, json=payload)
        try:
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = r.text[:500]
            raise RuntimeError(f"HuggingFace API error {r.status_code}: {detail}") from e
        return r

    def text_generation(self, model: str, inputs: str, params: Optional[Dict[str, Any]] = None) -> str:
        payload: Dict[str, Any] = {"inputs": inputs}
        if params:
            payload.update({"parameters": params})
        data = self._post(model, payload).json()
        # Handle common response shapes
        if isinstance(data, list) and data:
            if isinstance(data[0], dict) and "generated_text" in data[0]:
                return data[0]["generated_text"]
        if isinstance(data, dict) and "generated_text" in data:
            return data["generated_text"]
        raise RuntimeError(f"Unexpected HuggingFace response shape: {str(data)[:200]}")

    def text_to_image(self, model: str, prompt: str) -> bytes:
        r = self._post(model, {"inputs": prompt}, accept="image/png")
        if not r.headers.get("content-type", "").startswith("image/"):
            raise RuntimeError(f"HuggingFace returned {r.headers.get('content-type')!r} instead of an image")
        return r.content

    def close(self) -> None:
        self.client.close()
