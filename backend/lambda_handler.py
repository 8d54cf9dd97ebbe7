from mangum import Mangum
from main import app

# AWS Lambda entrypoint for API Gateway. The app has no startup or shutdown
# hooks, so the ASGI lifespan protocol is skipped.
handler = Mangum(app, lifespan="off")
