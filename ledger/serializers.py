from collections.abc import Mapping
from decimal import Decimal

from rest_framework import serializers

AMOUNT_OPTIONS = {'max_digits': 14, 'decimal_places': 2}
# derived totals have no digit cap on output
DERIVED_AMOUNT_OPTIONS = {'max_digits': None, 'decimal_places': 2, 'read_only': True}


class TextField(serializers.CharField):
    """CharField that refuses numbers instead of converting them to text."""
    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail('invalid')
        return super().to_internal_value(data)


class PaymentSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    date = serializers.DateField()
    amount = serializers.DecimalField(**AMOUNT_OPTIONS)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Payment amount must be greater than zero.')
        return value


class CustomerSerializer(serializers.Serializer):
    """Read shape of a customer, including the derived paid/due figures."""
    id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    village = serializers.CharField(read_only=True)
    phone = serializers.CharField(read_only=True)
    total_amount = serializers.DecimalField(**DERIVED_AMOUNT_OPTIONS)
    # the front end reads both spellings of the total
    totalAmount = serializers.DecimalField(source='total_amount', **DERIVED_AMOUNT_OPTIONS)
    paid = serializers.DecimalField(**DERIVED_AMOUNT_OPTIONS)
    due = serializers.DecimalField(**DERIVED_AMOUNT_OPTIONS)
    payments = PaymentSerializer(many=True, read_only=True)


class CustomerWriteSerializer(serializers.Serializer):
    """
    Input for create (POST), replace (PUT) and partial update (PATCH).

    With ``partial=True`` only the keys present in the request end up in
    ``validated_data``; anything present must still be well-formed.
    ``totalAmount`` is accepted as an alias of ``total_amount``.
    """
    name = TextField(max_length=255)
    village = TextField(max_length=255)
    phone = TextField(max_length=20)
    total_amount = serializers.DecimalField(min_value=Decimal('0'), **AMOUNT_OPTIONS)

    def to_internal_value(self, data):
        if isinstance(data, Mapping) and 'totalAmount' in data and 'total_amount' not in data:
            data = data.copy()
            data['total_amount'] = data['totalAmount']
        return super().to_internal_value(data)

    def validate(self, attrs):
        if self.partial and not attrs:
            raise serializers.ValidationError('Provide at least one of name, village, phone, totalAmount.')
        return attrs
