from __future__ import annotations

from rest_framework import serializers

from offers.services.ranking import STOPS_FILTERS, SortMode
from offers.services.types import CabinClass, RawOfferKind, is_iata_code

# Segment times are airport wall-clock times and carry no offset.
LOCAL_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _iata_field(value: str) -> str:
    probe = str(value or "").strip().upper()
    if probe and not is_iata_code(probe):
        raise serializers.ValidationError("Expected a 3-letter IATA code.")
    return probe


class QueryParamsSerializer(serializers.Serializer):
    origin = serializers.CharField(max_length=3, required=False, allow_blank=True, default="")
    to = serializers.CharField(max_length=3, required=False, allow_blank=True, default="")
    date = serializers.DateField(required=False, allow_null=True, default=None)
    returnDate = serializers.DateField(required=False, allow_null=True, default=None)
    adults = serializers.IntegerField(min_value=1, max_value=9, required=False, default=1)
    children = serializers.IntegerField(min_value=0, max_value=9, required=False, default=0)
    infants = serializers.IntegerField(min_value=0, max_value=9, required=False, default=0)
    curr = serializers.CharField(max_length=3, required=False, allow_blank=True, default="")
    cabin = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")

    def to_internal_value(self, data):  # noqa: ANN001, ANN201
        # "from" is a keyword, so it is read here instead of through a field name.
        data = data.copy() if hasattr(data, "copy") else dict(data)
        if "from" in data and "origin" not in data:
            data["origin"] = data.get("from")
        return super().to_internal_value(data)

    def validate_origin(self, value: str) -> str:
        return _iata_field(value)

    def validate_to(self, value: str) -> str:
        return _iata_field(value)

    def validate_curr(self, value: str) -> str:
        return value.strip().upper()

    def validate_cabin(self, value: str) -> str:
        return CabinClass.from_value(value).value if value else ""

    def validate(self, attrs):  # noqa: ANN201
        depart, ret = attrs.get("date"), attrs.get("returnDate")
        if depart and ret and ret < depart:
            raise serializers.ValidationError({"returnDate": "Return date must not be before the departure date."})
        return attrs


class SearchParamsSerializer(QueryParamsSerializer):
    code = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    stops = serializers.ChoiceField(choices=tuple(STOPS_FILTERS), required=False, default="any")
    airlines = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    priceMax = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True, default=None)
    durationMax = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)
    sort = serializers.ChoiceField(choices=[mode.value for mode in SortMode], required=False, default=SortMode.BEST.value)

    def validate_airlines(self, value: str) -> list[str]:
        return [item.strip().upper() for item in value.split(",") if item.strip()]

    def validate(self, attrs):  # noqa: ANN201
        attrs = super().validate(attrs)
        if not attrs.get("code") and not (attrs.get("origin") and attrs.get("to") and attrs.get("date")):
            raise serializers.ValidationError("Provide either code or from, to and date.")
        return attrs


class NormalizeParamsSerializer(QueryParamsSerializer):
    source = serializers.ChoiceField(
        choices=[kind.value for kind in RawOfferKind],
        required=False,
        default=RawOfferKind.TEQUILA.value,
    )


class SegmentSerializer(serializers.Serializer):
    origin = serializers.CharField()
    destination = serializers.CharField()
    originCity = serializers.CharField(source="origin_city")
    destinationCity = serializers.CharField(source="destination_city")
    departure = serializers.DateTimeField(format=LOCAL_TIME_FORMAT, allow_null=True)
    arrival = serializers.DateTimeField(format=LOCAL_TIME_FORMAT, allow_null=True)
    carrier = serializers.CharField()
    flightNumber = serializers.CharField(source="flight_number")
    leg = serializers.IntegerField()


class BaggageSerializer(serializers.Serializer):
    cabinKg = serializers.FloatField(source="cabin_kg", allow_null=True)
    checkedKg = serializers.FloatField(source="checked_kg", allow_null=True)
    firstBagFee = serializers.DecimalField(source="first_bag_fee", max_digits=10, decimal_places=2, allow_null=True, coerce_to_string=False)
    secondBagFee = serializers.DecimalField(source="second_bag_fee", max_digits=10, decimal_places=2, allow_null=True, coerce_to_string=False)


class FlightOfferSerializer(serializers.Serializer):
    origin = serializers.CharField()
    destination = serializers.CharField()
    originCity = serializers.CharField(source="origin_city")
    destinationCity = serializers.CharField(source="destination_city")
    price = serializers.DecimalField(max_digits=12, decimal_places=2, coerce_to_string=False)
    currency = serializers.CharField()
    source = serializers.CharField()
    airline = serializers.CharField()
    airlineCode = serializers.CharField(source="airline_code")
    durationMinutes = serializers.IntegerField(source="duration_minutes")
    layoverMinutes = serializers.IntegerField(source="layover_minutes")
    stops = serializers.IntegerField(source="stop_count")
    departDate = serializers.DateField(source="depart_date", allow_null=True)
    returnDate = serializers.DateField(source="return_date", allow_null=True)
    segments = SegmentSerializer(many=True)
    baggage = BaggageSerializer()
    deepLink = serializers.CharField(source="deep_link", allow_null=True)


class CacheSetSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=("set", "warm"))
    key = serializers.CharField(max_length=250, required=False, allow_blank=False)
    value = serializers.JSONField(required=False)
    ttl = serializers.IntegerField(min_value=1, max_value=86400 * 7, required=False, default=3600)

    def validate(self, attrs):  # noqa: ANN201
        if attrs["action"] == "set" and (not attrs.get("key") or "value" not in attrs):
            raise serializers.ValidationError("Key and value are required for the set action.")
        return attrs
