from django.http import Http404
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiResponse
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from safelock.exceptions import StaleObjectConflict
from safelock.models import KeyValueEntry
from safelock.serializers import KeyValueSerializer, KeyValueWriteSerializer, VersionQuerySerializer
from safelock.services import delete_value, put_value, read_value

KEY_PARAMETER = OpenApiParameter(
    name="key",
    type=str,
    location=OpenApiParameter.PATH,
    description="The key of the entry",
)


def _conflict(exc: StaleObjectConflict) -> Response:
    return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)


class KeyValueView(APIView):
    """Handle single key/value operations with version checks."""

    @extend_schema(
        operation_id="read_key",
        summary="Read a key/value pair",
        description="Retrieve the value and current version of a key.",
        parameters=[KEY_PARAMETER],
        responses={
            200: OpenApiResponse(response=KeyValueSerializer, description="The key/value pair"),
            404: OpenApiResponse(description="Key not found"),
        },
        tags=["Key-Value Operations"],
    )
    def get(self, request, key: str):
        try:
            entry = read_value(key)
        except KeyValueEntry.DoesNotExist as exc:
            raise Http404 from exc
        return Response(KeyValueSerializer(entry).data)

    @extend_schema(
        operation_id="put_key",
        summary="Create or update a key/value pair",
        description="Insert or update a key/value pair. When a version is sent the update only "
        "applies if the stored version still matches it, otherwise 409 is returned.",
        parameters=[KEY_PARAMETER],
        request=KeyValueWriteSerializer,
        responses={
            200: OpenApiResponse(response=KeyValueSerializer, description="Updated the existing entry"),
            201: OpenApiResponse(response=KeyValueSerializer, description="Created a new entry"),
            409: OpenApiResponse(description="The entry was changed by someone else"),
        },
        tags=["Key-Value Operations"],
    )
    def put(self, request, key: str):
        serializer = KeyValueWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            entry, created = put_value(
                key,
                serializer.validated_data["value"],
                expected_version=serializer.validated_data.get("version"),
            )
        except StaleObjectConflict as exc:
            return _conflict(exc)

        status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return Response(KeyValueSerializer(entry).data, status=status_code)

    @extend_schema(
        operation_id="delete_key",
        summary="Delete a key/value pair",
        description="Remove a key/value pair, optionally only if it is still at the given version.",
        parameters=[
            KEY_PARAMETER,
            OpenApiParameter(
                name="version",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Version the client last read",
                required=False,
            ),
        ],
        responses={
            204: OpenApiResponse(description="Deleted the key/value pair"),
            404: OpenApiResponse(description="Key not found"),
            409: OpenApiResponse(description="The entry was changed by someone else"),
        },
        tags=["Key-Value Operations"],
    )
    def delete(self, request, key: str):
        query = VersionQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        try:
            deleted = delete_value(key, expected_version=query.validated_data.get("version"))
        except StaleObjectConflict as exc:
            return _conflict(exc)

        if not deleted:
            raise Http404
        return Response(status=status.HTTP_204_NO_CONTENT)
