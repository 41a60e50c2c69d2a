"""Osmosis swap messages used by the stream, declared as protobuf descriptors."""
from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.any_pb2 import Any as ProtoAny

from analysis.models import SwapType, TradeTask

_FieldProto = descriptor_pb2.FieldDescriptorProto


def _add_field(message, name: str, number: int, field_type: int, type_name: str | None = None,
               repeated: bool = False) -> None:
    field = message.field.add(
        name=name,
        number=number,
        type=field_type,
        label=_FieldProto.LABEL_REPEATED if repeated else _FieldProto.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = type_name


def _coin_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="cosmos/base/v1beta1/coin.proto", package="cosmos.base.v1beta1", syntax="proto3"
    )
    coin = file_proto.message_type.add(name="Coin")
    _add_field(coin, "denom", 1, _FieldProto.TYPE_STRING)
    _add_field(coin, "amount", 2, _FieldProto.TYPE_STRING)
    return file_proto


def _swap_route_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="osmosis/poolmanager/v1beta1/swap_route.proto", package="osmosis.poolmanager.v1beta1", syntax="proto3"
    )
    in_route = file_proto.message_type.add(name="SwapAmountInRoute")
    _add_field(in_route, "pool_id", 1, _FieldProto.TYPE_UINT64)
    _add_field(in_route, "token_out_denom", 2, _FieldProto.TYPE_STRING)
    out_route = file_proto.message_type.add(name="SwapAmountOutRoute")
    _add_field(out_route, "pool_id", 1, _FieldProto.TYPE_UINT64)
    _add_field(out_route, "token_in_denom", 2, _FieldProto.TYPE_STRING)
    return file_proto


def _gamm_tx_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="osmosis/gamm/v1beta1/tx.proto",
        package="osmosis.gamm.v1beta1",
        syntax="proto3",
        dependency=["cosmos/base/v1beta1/coin.proto", "osmosis/poolmanager/v1beta1/swap_route.proto"],
    )
    swap_in = file_proto.message_type.add(name="MsgSwapExactAmountIn")
    _add_field(swap_in, "sender", 1, _FieldProto.TYPE_STRING)
    _add_field(swap_in, "routes", 2, _FieldProto.TYPE_MESSAGE,
               ".osmosis.poolmanager.v1beta1.SwapAmountInRoute", repeated=True)
    _add_field(swap_in, "token_in", 3, _FieldProto.TYPE_MESSAGE, ".cosmos.base.v1beta1.Coin")
    _add_field(swap_in, "token_out_min_amount", 4, _FieldProto.TYPE_STRING)

    swap_out = file_proto.message_type.add(name="MsgSwapExactAmountOut")
    _add_field(swap_out, "sender", 1, _FieldProto.TYPE_STRING)
    _add_field(swap_out, "routes", 2, _FieldProto.TYPE_MESSAGE,
               ".osmosis.poolmanager.v1beta1.SwapAmountOutRoute", repeated=True)
    _add_field(swap_out, "token_in_max_amount", 3, _FieldProto.TYPE_STRING)
    _add_field(swap_out, "token_out", 4, _FieldProto.TYPE_MESSAGE, ".cosmos.base.v1beta1.Coin")
    return file_proto


# Private pool: the default pool already holds cosmpy's cosmos protos.
_POOL = descriptor_pool.DescriptorPool()
for _file_proto in (_coin_file(), _swap_route_file(), _gamm_tx_file()):
    _POOL.AddSerializedFile(_file_proto.SerializeToString())


def _message_class(full_name: str):
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(full_name))


ProtoCoin = _message_class("cosmos.base.v1beta1.Coin")
SwapAmountInRoute = _message_class("osmosis.poolmanager.v1beta1.SwapAmountInRoute")
SwapAmountOutRoute = _message_class("osmosis.poolmanager.v1beta1.SwapAmountOutRoute")
MsgSwapExactAmountIn = _message_class("osmosis.gamm.v1beta1.MsgSwapExactAmountIn")
MsgSwapExactAmountOut = _message_class("osmosis.gamm.v1beta1.MsgSwapExactAmountOut")

SWAP_EXACT_AMOUNT_IN_TYPE_URL = "/" + MsgSwapExactAmountIn.DESCRIPTOR.full_name
SWAP_EXACT_AMOUNT_OUT_TYPE_URL = "/" + MsgSwapExactAmountOut.DESCRIPTOR.full_name


def swap_message(sender: str, task: TradeTask):
    """Exact-out swaps cap the input at amount / min_price; exact-in swaps floor the output at amount * min_price."""
    if task.swap_type == SwapType.AMOUNT_OUT:
        return MsgSwapExactAmountOut(
            sender=sender,
            routes=[SwapAmountOutRoute(pool_id=task.pool_id, token_in_denom=task.token_in.denom)],
            token_in_max_amount=str(int(task.amount / task.min_price)),
            token_out=ProtoCoin(denom=task.token_out.denom, amount=str(task.amount)),
        )
    if task.swap_type == SwapType.AMOUNT_IN:
        return MsgSwapExactAmountIn(
            sender=sender,
            routes=[SwapAmountInRoute(pool_id=task.pool_id, token_out_denom=task.token_out.denom)],
            token_in=ProtoCoin(denom=task.token_in.denom, amount=str(task.amount)),
            token_out_min_amount=str(int(task.amount * task.min_price)),
        )
    raise ValueError(f"Invalid swap type: {task.swap_type}")


def build_swap_message(sender: str, task: TradeTask) -> ProtoAny:
    packed = ProtoAny()
    packed.Pack(swap_message(sender, task), type_url_prefix="/")
    return packed
