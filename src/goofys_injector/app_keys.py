from aiohttp import web

from goofys_injector.mutator import Mutator


MUTATOR_KEY = web.AppKey("mutator", Mutator)
