import io

from locust import HttpUser, task, between
from PIL import Image


def _sample_jpeg() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (64, 64), color=(90, 140, 200)).save(buf, format="JPEG")
    return buf.getvalue()


SAMPLE_IMAGE = _sample_jpeg()


class EcoScanUser(HttpUser):
    # Simulates users waiting between 1 and 3 seconds between requests
    wait_time = between(1, 3)

    @task(5)
    def classify_waste(self):
        # Each request costs one model call on the gateway; point at a stub for big runs.
        files = {"image": ("sample.jpg", SAMPLE_IMAGE, "image/jpeg")}
        self.client.post("/api/v1/classify-waste", files=files)

    @task(1)
    def load_categories(self):
        """Simulates the UI fetching category tips on page load."""
        self.client.get("/api/v1/categories")
