import json
import os


def handler(event, context):
    print(json.dumps({"service": os.environ.get("SERVICE"), "event": event}))
    return {"statusCode": 200}
