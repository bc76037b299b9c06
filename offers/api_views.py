from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from asgiref.sync import async_to_sync
from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.utils import timezone
from django.views.decorators.http import require_GET
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle
from rest_framework.views import APIView

from offers.serializers import (
    CacheSetSerializer,
    FlightOfferSerializer,
    NormalizeParamsSerializer,
    SearchParamsSerializer,
)
from offers.services.cache import CacheKeys, get_cache_facade
from offers.services.config import SearchConfig, SiteFlags, cache_admin_token
from offers.services.normalizer import normalize
from offers.services.pipeline import search_offers
from offers.services.ranking import ViewFilters
from offers.services.types import CabinClass, SearchQuery
from offers.tasks import warm_layout_cache, warm_layout_targets

logger = logging.getLogger(__name__)

WARM_CONTACT_AIRLINES = ("6E", "AI", "SG")


class FlightSearchThrottle(AnonRateThrottle):
    scope = "flight_search"


@require_GET
def healthz(_request: HttpRequest) -> HttpResponse:
    return HttpResponse("ok", content_type="text/plain")


def compact_validation_errors(detail):  # noqa: ANN001, ANN201
    if isinstance(detail, list):
        if len(detail) == 1:
            return compact_validation_errors(detail[0])
        return [compact_validation_errors(item) for item in detail]
    if isinstance(detail, Mapping):
        return {str(key): compact_validation_errors(value) for key, value in detail.items()}
    return str(detail)


def validation_error_response(errors) -> Response:  # noqa: ANN001
    return Response(
        {"detail": "validation_error", "errors": compact_validation_errors(errors)},
        status=status.HTTP_400_BAD_REQUEST,
    )


def query_from_params(data: dict[str, Any], currency: str) -> SearchQuery:
    return SearchQuery(
        origin=data.get("origin") or "",
        destination=data.get("to") or None,
        depart_date=data.get("date"),
        return_date=data.get("returnDate"),
        adults=data.get("adults") or 1,
        children=data.get("children") or 0,
        infants=data.get("infants") or 0,
        cabin=CabinClass.from_value(data.get("cabin")),
        currency=data.get("curr") or currency,
    )


def query_payload(query: SearchQuery) -> dict[str, Any]:
    return {
        "origin": query.origin,
        "destination": query.destination,
        "departDate": query.depart_date,
        "returnDate": query.return_date,
        "adults": query.adults,
        "children": query.children,
        "infants": query.infants,
        "cabin": query.cabin.value,
        "currency": query.currency,
    }


class SearchAPIView(APIView):
    permission_classes = [permissions.AllowAny]
    throttle_classes = [FlightSearchThrottle]

    def get(self, request):  # noqa: ANN001, ANN201
        serializer = SearchParamsSerializer(data=request.query_params)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)
        data = serializer.validated_data

        config = SearchConfig.from_settings()
        flags = SiteFlags.from_settings()
        query = None
        if not data.get("code"):
            query = query_from_params(data, config.default_currency)
        elif data.get("curr"):
            config = SearchConfig.from_settings(default_currency=data["curr"])

        filters = ViewFilters.from_params(
            stops=data.get("stops"),
            airlines=data.get("airlines"),
            price_max=data.get("priceMax"),
            duration_max=data.get("durationMax"),
        )
        result = async_to_sync(search_offers)(
            code=data.get("code"),
            query=query,
            filters=filters,
            sort_mode=data.get("sort"),
            config=config,
        )
        return Response(
            {
                "query": query_payload(result.query),
                "offers": FlightOfferSerializer(result.offers, many=True).data,
                "count": len(result.offers),
                "summary": result.summary,
                "noResults": result.no_results,
                "sources": result.sources,
                "flags": flags.as_dict(),
            }
        )


class NormalizeFlightsAPIView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):  # noqa: ANN001, ANN201
        if not isinstance(request.data, list):
            return Response(
                {"detail": "invalid_format", "error": "Invalid data format. Expected an array."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        params = NormalizeParamsSerializer(data=request.query_params)
        if not params.is_valid():
            return validation_error_response(params.errors)
        data = params.validated_data
        query = query_from_params(data, SearchConfig.from_settings().default_currency)
        flights = normalize(request.data, data["source"], query)
        return Response(
            {
                "success": True,
                "flights": FlightOfferSerializer(flights, many=True).data,
                "count": len(flights),
            }
        )


def _jsonable(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class CacheAdminAPIView(APIView):
    permission_classes = [permissions.AllowAny]

    def _denied(self, request) -> Response | None:  # noqa: ANN001
        expected = cache_admin_token()
        if not expected:
            return Response({"detail": "cache_admin_disabled"}, status=status.HTTP_404_NOT_FOUND)
        if request.headers.get("X-Admin-Token", "") != expected:
            logger.warning("Rejected cache admin request with a bad token.")
            return Response({"detail": "forbidden"}, status=status.HTTP_403_FORBIDDEN)
        return None

    def get(self, request):  # noqa: ANN001, ANN201
        denied = self._denied(request)
        if denied is not None:
            return denied
        cache = get_cache_facade()
        action = request.query_params.get("action")
        key = request.query_params.get("key")

        if action == "status":
            connected = async_to_sync(cache.set)("health_check", timezone.now().isoformat(), 60)
            return Response({"status": "connected" if connected else "unavailable", "connected": connected, "timestamp": timezone.now()})
        if action in {"get", "exists"} and not key:
            return Response({"error": f"Key is required for the {action} action."}, status=status.HTTP_400_BAD_REQUEST)
        if action == "get":
            data = async_to_sync(cache.get)(key)
            return Response({"key": key, "data": _jsonable(data), "found": data is not None})
        if action == "exists":
            return Response({"key": key, "exists": async_to_sync(cache.exists)(key)})
        if action == "stats":
            return Response({"backend": settings.CACHES["default"]["BACKEND"], "timestamp": timezone.now()})
        return Response({"available_actions": ["status", "get", "exists", "stats"]})

    def delete(self, request):  # noqa: ANN001, ANN201
        denied = self._denied(request)
        if denied is not None:
            return denied
        cache = get_cache_facade()
        action = request.query_params.get("action")
        params = request.query_params

        if action == "clear":
            key = params.get("key")
            if not key:
                return Response({"error": "Key is required for the clear action."}, status=status.HTTP_400_BAD_REQUEST)
            return Response({"key": key, "deleted": async_to_sync(cache.delete)(key)})
        if action == "flush":
            logger.warning("Flushing the whole cache on admin request.")
            return Response({"flushed": async_to_sync(cache.clear)()})
        if action == "invalidate":
            if params.get("airline"):
                removed = async_to_sync(cache.invalidate_airline)(params["airline"].upper())
            elif params.get("city"):
                removed = async_to_sync(cache.invalidate_city)(params["city"].upper())
            elif params.get("flight") and "-" in params["flight"]:
                departure, arrival = params["flight"].upper().split("-", 1)
                removed = async_to_sync(cache.invalidate_flight)(departure, arrival)
            else:
                return Response(
                    {"error": "invalidate needs airline, city or flight=DEP-ARR."},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            return Response({"invalidated": removed})
        return Response({"available_actions": ["clear", "flush", "invalidate"]})

    def post(self, request):  # noqa: ANN001, ANN201
        denied = self._denied(request)
        if denied is not None:
            return denied
        serializer = CacheSetSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)
        data = serializer.validated_data
        cache = get_cache_facade()

        if data["action"] == "set":
            stored = async_to_sync(cache.set)(data["key"], data["value"], data["ttl"])
            return Response({"key": data["key"], "set": stored, "ttl": data["ttl"]})

        keys = [CacheKeys.layout_data(lang_id, domain_id) for lang_id, domain_id in warm_layout_targets()]
        keys += [CacheKeys.airline_contact(code) for code in WARM_CONTACT_AIRLINES]
        results = [{"key": key, "exists": async_to_sync(cache.exists)(key)} for key in keys]
        if not all(item["exists"] for item in results):
            warm_layout_cache.delay()
        return Response({"results": results, "timestamp": timezone.now()})
