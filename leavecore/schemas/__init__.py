# LeaveCore - API Schemas
# Pydantic request/response bodies for the JSON routes
