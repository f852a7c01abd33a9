"""Wire-level codecs for the MyRvLink gateway protocol."""
