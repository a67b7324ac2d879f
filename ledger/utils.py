from decimal import ROUND_HALF_UP, Decimal

PAISE = Decimal('0.01')


def to_decimal(value):
    """Coerce an int, float, string or Decimal amount to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def summarize(customers):
    """
    Sum total, paid and due across the given customers.
    This is the totals row shown under the customer table.
    """
    totals = {'total': Decimal('0'), 'paid': Decimal('0'), 'due': Decimal('0')}
    for customer in customers:
        totals['total'] += customer.total_amount
        totals['paid'] += customer.paid
        totals['due'] += customer.due
    return totals


def format_inr(amount):
    """
    Format an amount as Indian Rupees using lakh/crore digit grouping:
      1234567    -> ₹12,34,567.00
      -500       -> -₹500.00
    The last three digits form one group, every group before it has two.
    """
    amount = to_decimal(amount).quantize(PAISE, rounding=ROUND_HALF_UP)
    sign = '-' if amount < 0 else ''
    whole, fraction = f"{abs(amount):.2f}".split('.')
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ','.join(groups + [tail])
    return f"{sign}₹{whole}.{fraction}"
